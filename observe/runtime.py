# observe/runtime.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from controller import Reconciler, Result
from gate import admit_create, admit_delete, admit_update, owner_request
from k8s import Scope
from observe.watch import SYNC, WatchEvent
from owners.annotations import MICROSEGMENTATION
from owners.kinds import OwnerKind, Request, request_for
from reconcile import pid
from workqueue import OwnerIndex, WorkQueue


class OwnerCache:
    """Last seen state of each owner, so updates can be compared old vs new."""

    def __init__(self, kind: OwnerKind):
        self.kind = kind
        self._lock = threading.Lock()
        self._objects: Dict[Request, dict] = {}

    def swap(self, req: Request, obj: Optional[dict]) -> Optional[dict]:
        with self._lock:
            old = self._objects.get(req)
            if obj is None:
                self._objects.pop(req, None)
            else:
                self._objects[req] = obj
            return old

    def replace(self, objs: Dict[Request, dict]) -> Dict[Request, dict]:
        """Swap in a full list; returns what was cached before."""
        with self._lock:
            old, self._objects = self._objects, dict(objs)
            return old

    def requests(self, annotated_only: bool = True) -> List[Request]:
        with self._lock:
            items = list(self._objects.items())
        out = []
        for req, obj in items:
            ann = (obj.get("metadata", {}) or {}).get("annotations", {}) or {}
            if annotated_only and MICROSEGMENTATION not in ann:
                continue
            out.append(req)
        return out


def handle_owner_event(
    event: WatchEvent,
    cache: OwnerCache,
    queue: WorkQueue,
    label_lists: bool = False,
) -> bool:
    """Feed one owner watch event through the gate. Returns True if enqueued."""
    etype, obj = event
    if etype == SYNC:
        return sync_owners(obj.get("items") or [], cache, queue, label_lists=label_lists) > 0

    req = request_for(cache.kind, obj)
    if req is None:
        return False

    if etype == "DELETED":
        cache.swap(req, None)
        admitted = admit_delete(obj)
    else:
        old = cache.swap(req, obj)
        # ADDED for an object already cached is compared like an update
        if old is None:
            admitted = admit_create(obj)
        else:
            admitted = admit_update(old, obj, label_lists=label_lists)

    if admitted:
        queue.add(req)
    return admitted


def sync_owners(
    items: Iterable[dict],
    cache: OwnerCache,
    queue: WorkQueue,
    label_lists: bool = False,
) -> int:
    """Replace the cache with a full list. Owners missing from it count as deleted."""
    current: Dict[Request, dict] = {}
    for obj in items:
        req = request_for(cache.kind, obj)
        if req is not None:
            current[req] = obj
    previous = cache.replace(current)

    admitted: List[Request] = []
    for req, obj in current.items():
        old = previous.get(req)
        if old is None:
            ok = admit_create(obj)
        else:
            ok = admit_update(old, obj, label_lists=label_lists)
        if ok:
            admitted.append(req)
    for req, old in previous.items():
        if req not in current and admit_delete(old):
            admitted.append(req)

    for req in admitted:
        queue.add(req)
    return len(admitted)


def handle_policy_event(
    event: WatchEvent,
    index: OwnerIndex,
    queue: WorkQueue,
    kinds: Iterable[str],
) -> Optional[Request]:
    """Re-enqueue the owner of a changed child so drift gets repaired."""
    etype, obj = event
    if etype == SYNC:
        sync_policies(obj.get("items") or [], index, queue, kinds)
        return None

    child = pid(obj)
    previous = index.owner(child)
    req = owner_request(obj, kinds)

    if etype == "DELETED":
        index.remove(child)
    else:
        index.set(child, req)

    # ownership stripped from a child: let the old owner take it back
    target = req or previous
    if target is not None:
        queue.add(target)
    return target


def sync_policies(
    items: Iterable[dict],
    index: OwnerIndex,
    queue: WorkQueue,
    kinds: Iterable[str],
) -> None:
    """Index a full list of policies. Children missing from it count as deleted."""
    kinds = list(kinds)
    seen = set()
    for obj in items:
        seen.add(pid(obj))
        handle_policy_event(("ADDED", obj), index, queue, kinds)
    for ns, name in index.known() - seen:
        handle_policy_event(("DELETED", {"metadata": {"namespace": ns, "name": name}}), index, queue, kinds)


def run_watch_loop(
    stop_event: threading.Event,
    events: Iterable[WatchEvent],
    handle: Callable[[WatchEvent], object],
    log: logging.Logger,
) -> None:
    for event in events:
        if stop_event.is_set():
            break
        try:
            handle(event)
        except Exception:
            log.exception("failed to handle %s event", event[0])
    log.info("watch loop stopped")


def process_next(
    queue: WorkQueue,
    reconcilers: Dict[str, Reconciler],
    stop_event: threading.Event,
    log: logging.Logger,
    request_timeout: Optional[float] = None,
    poll: float = 1.0,
) -> Optional[Result]:
    req = queue.get(timeout=poll)
    if req is None:
        return None

    try:
        scope = Scope(timeout=request_timeout, stop_event=stop_event)
        result = reconcilers[req.kind].reconcile(req, scope)
    except Exception:
        log.exception("reconcile of %s crashed; dropping request", req)
        result = Result.failed()
    finally:
        queue.done(req)

    if result.requeue_after:
        log.info("requeue %s in %.0fs", req, result.requeue_after)
        queue.add_after(req, result.requeue_after)
    return result


def run_worker_loop(
    stop_event: threading.Event,
    queue: WorkQueue,
    reconcilers: Dict[str, Reconciler],
    log: logging.Logger,
    request_timeout: Optional[float] = None,
) -> None:
    while not stop_event.is_set():
        process_next(queue, reconcilers, stop_event, log, request_timeout=request_timeout)
    log.info("worker stopped")


def run_resync_loop(
    stop_event: threading.Event,
    caches: Iterable[OwnerCache],
    queue: WorkQueue,
    interval: float,
    log: logging.Logger,
) -> None:
    """Periodically re-enqueue every annotated owner."""
    caches = list(caches)
    while not stop_event.wait(interval):
        started = time.monotonic()
        count = 0
        for cache in caches:
            for req in cache.requests():
                queue.add(req)
                count += 1
        log.info("resync enqueued %d owners in %.2fs", count, time.monotonic() - started)
