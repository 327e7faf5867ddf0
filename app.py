# app.py
from __future__ import annotations

import logging
import signal
import threading
from functools import partial
from typing import Dict, List

from kubernetes import client

from controller import Reconciler
from k8s import EventRecorder, KubeStore, load_kube
from observe.runtime import (
    OwnerCache,
    handle_owner_event,
    handle_policy_event,
    run_resync_loop,
    run_watch_loop,
    run_worker_loop,
)
from observe.watch import stream_events
from owners.kinds import NAMESPACE, SERVICE, OwnerKind
from settings import Settings
from workqueue import OwnerIndex, WorkQueue


def _list_fn(core: client.CoreV1Api, kind: OwnerKind):
    if kind is NAMESPACE:
        return core.list_namespace
    return core.list_service_for_all_namespaces


def _start(name: str, target, *args) -> threading.Thread:
    t = threading.Thread(target=target, args=args, name=name, daemon=True)
    t.start()
    return t


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    )
    log = logging.getLogger("manager")

    load_kube(log)
    core = client.CoreV1Api()
    networking = client.NetworkingV1Api()
    to_dict = core.api_client.sanitize_for_serialization
    store = KubeStore(core, networking)

    kinds: List[OwnerKind] = [NAMESPACE]
    if settings.watch_services:
        kinds.append(SERVICE)

    reconcilers: Dict[str, Reconciler] = {}
    for kind in kinds:
        recorder = EventRecorder(
            core,
            component=kind.controller_name,
            cluster_namespace=settings.event_namespace,
            log=logging.getLogger("events"),
        )
        reconcilers[kind.kind] = Reconciler(
            kind,
            store,
            recorder,
            log=logging.getLogger(kind.controller_name),
            requeue_after=settings.requeue_seconds,
        )

    stop_event = threading.Event()
    queue = WorkQueue()
    index = OwnerIndex()
    observer_log = logging.getLogger("observer")
    threads: List[threading.Thread] = []

    caches: List[OwnerCache] = []
    for kind in kinds:
        cache = OwnerCache(kind)
        caches.append(cache)
        events = stream_events(
            _list_fn(core, kind),
            to_dict,
            stop_event,
            log=observer_log,
            timeout_seconds=settings.watch_timeout_seconds,
        )
        handle = partial(handle_owner_event, cache=cache, queue=queue, label_lists=settings.gate_label_lists)
        threads.append(_start(f"watch-{kind.kind.lower()}", run_watch_loop, stop_event, events, handle, observer_log))

    policy_events = stream_events(
        networking.list_network_policy_for_all_namespaces,
        to_dict,
        stop_event,
        log=observer_log,
        timeout_seconds=settings.watch_timeout_seconds,
    )
    handle_policy = partial(handle_policy_event, index=index, queue=queue, kinds=list(reconcilers))
    threads.append(_start("watch-networkpolicy", run_watch_loop, stop_event, policy_events, handle_policy, observer_log))

    for i in range(settings.workers):
        threads.append(
            _start(
                f"worker-{i}",
                run_worker_loop,
                stop_event,
                queue,
                reconcilers,
                logging.getLogger("worker"),
                settings.request_timeout_seconds,
            )
        )

    if settings.resync_seconds > 0:
        threads.append(
            _start("resync", run_resync_loop, stop_event, caches, queue, settings.resync_seconds, log)
        )

    def _shutdown(signum, _frame) -> None:
        log.info("received signal %d, shutting down", signum)
        stop_event.set()
        queue.shutdown()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    log.info("started controllers: %s", ", ".join(k.controller_name for k in kinds))
    while not stop_event.wait(1.0):
        pass

    for t in threads:
        t.join(timeout=5)
    log.info("stopped")


if __name__ == "__main__":
    main()
