# workqueue.py
from __future__ import annotations

import heapq
import itertools
import threading
import time
from typing import Dict, Hashable, List, Optional, Set, Tuple

from owners.kinds import Request

PolicyId = Tuple[str, str]  # (namespace, name)


class WorkQueue:
    """
    De-duplicating FIFO of reconcile requests.

    - a key sits in the queue at most once
    - a key handed to a worker is not handed out again until done(key);
      adds that arrive meanwhile are replayed on done()
    - add_after() delays an add; the earliest pending delay wins
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._queue: List[Hashable] = []
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        self._delayed: List[Tuple[float, int, Hashable]] = []
        self._seq = itertools.count()
        self._shutdown = False

    def add(self, key: Hashable) -> None:
        with self._cond:
            self._add_locked(key)

    def _add_locked(self, key: Hashable) -> None:
        if self._shutdown or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutdown:
                return
            heapq.heappush(self._delayed, (time.monotonic() + delay, next(self._seq), key))
            self._cond.notify()

    def _promote_due_locked(self, now: float) -> None:
        while self._delayed and self._delayed[0][0] <= now:
            _, _, key = heapq.heappop(self._delayed)
            self._add_locked(key)

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Next key to process, or None on timeout or shutdown."""
        deadline = time.monotonic() + timeout if timeout is not None else None
        with self._cond:
            while True:
                now = time.monotonic()
                self._promote_due_locked(now)
                if self._queue:
                    key = self._queue.pop(0)
                    self._dirty.discard(key)
                    self._processing.add(key)
                    return key
                if self._shutdown:
                    return None

                waits = []
                if deadline is not None:
                    if now >= deadline:
                        return None
                    waits.append(deadline - now)
                if self._delayed:
                    waits.append(max(0.0, self._delayed[0][0] - now))
                self._cond.wait(min(waits) if waits else None)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def pending_delayed(self) -> int:
        with self._cond:
            return len(self._delayed)


class OwnerIndex:
    """Owner request -> identities of the child policies it controls."""

    def __init__(self):
        self._lock = threading.Lock()
        self._children: Dict[Request, Set[PolicyId]] = {}
        self._owner_of: Dict[PolicyId, Request] = {}

    def set(self, child: PolicyId, owner: Optional[Request]) -> None:
        with self._lock:
            previous = self._owner_of.pop(child, None)
            if previous is not None:
                kids = self._children.get(previous, set())
                kids.discard(child)
                if not kids:
                    self._children.pop(previous, None)
            if owner is not None:
                self._owner_of[child] = owner
                self._children.setdefault(owner, set()).add(child)

    def remove(self, child: PolicyId) -> None:
        self.set(child, None)

    def children(self, owner: Request) -> Set[PolicyId]:
        with self._lock:
            return set(self._children.get(owner, set()))

    def owner(self, child: PolicyId) -> Optional[Request]:
        with self._lock:
            return self._owner_of.get(child)

    def known(self) -> Set[PolicyId]:
        with self._lock:
            return set(self._owner_of)
