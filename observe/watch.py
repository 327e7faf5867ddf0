# observe/watch.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, Optional, Tuple

from kubernetes import watch
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

# (ADDED|MODIFIED|DELETED, object as camelCase dict), or
# (SYNC, list as camelCase dict) after every full list
WatchEvent = Tuple[str, dict]

SYNC = "SYNC"


def stream_events(
    list_fn: Callable,
    to_dict: Callable[[object], dict],
    stop_event: threading.Event,
    log: Optional[logging.Logger] = None,
    timeout_seconds: int = 300,
    max_backoff: float = 30.0,
) -> Iterator[WatchEvent]:
    """
    Endless list-then-watch over list_fn, resuming from the last resourceVersion.

    Every fresh start lists first and yields one SYNC event carrying the
    whole list, so consumers can forget objects that went away unseen.
    A server-side timeout just reopens the watch. 410 Gone starts over
    with a new list. Transport failures back off exponentially up to
    max_backoff.
    """
    log = log or logging.getLogger("observer")
    resource_version: Optional[str] = None
    listed = False
    backoff = min(1.0, max_backoff)

    while not stop_event.is_set():
        w = watch.Watch()
        try:
            if not listed:
                listing = to_dict(list_fn(timeout_seconds=timeout_seconds))
                resource_version = (listing.get("metadata", {}) or {}).get("resourceVersion")
                listed = True
                yield SYNC, listing

            kwargs = {"timeout_seconds": timeout_seconds}
            if resource_version:
                kwargs["resource_version"] = resource_version
            for event in w.stream(list_fn, **kwargs):
                if stop_event.is_set():
                    w.stop()
                    return
                etype = event.get("type")
                if etype == "ERROR":
                    raw = event.get("raw_object") or {}
                    if raw.get("code") == 410:
                        log.info("watch expired, relisting")
                        listed = False
                        break
                    log.warning("watch error: %s", raw.get("message", raw))
                    continue
                obj = to_dict(event["object"])
                rv = (obj.get("metadata", {}) or {}).get("resourceVersion")
                if rv:
                    resource_version = rv
                yield etype, obj
            # clean end of stream: reopen right away
            backoff = min(1.0, max_backoff)
        except ApiException as e:
            if e.status == 410:
                log.info("watch expired, relisting")
                listed = False
                continue
            log.warning("watch failed: %s %s; reconnecting in %.1fs", e.status, e.reason, backoff)
            stop_event.wait(backoff)
            backoff = min(backoff * 2, max_backoff)
        except HTTPError as e:
            log.warning("watch connection lost: %s; reconnecting in %.1fs", e, backoff)
            stop_event.wait(backoff)
            backoff = min(backoff * 2, max_backoff)
        finally:
            w.stop()
