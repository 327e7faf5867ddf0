# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _flag(env: Mapping[str, str], key: str, default: str) -> bool:
    return env.get(key, default) == "1"


@dataclass(frozen=True)
class Settings:
    requeue_seconds: float = 120.0
    workers: int = 2
    request_timeout_seconds: float = 30.0
    watch_timeout_seconds: int = 300
    resync_seconds: float = 600.0
    watch_services: bool = True
    gate_label_lists: bool = False
    event_namespace: str = "default"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            requeue_seconds=float(env.get("REQUEUE_SECONDS", "120")),
            workers=max(1, int(env.get("WORKERS", "2"))),
            request_timeout_seconds=float(env.get("REQUEST_TIMEOUT_SECONDS", "30")),
            watch_timeout_seconds=int(env.get("WATCH_TIMEOUT_SECONDS", "300")),
            resync_seconds=float(env.get("RESYNC_SECONDS", "600")),
            # the Service controller runs the same reconcile against Services
            watch_services=_flag(env, "CONTROLLER_WATCH_SERVICES", "1"),
            # off by default: label-list edits alone wait for the next resync
            gate_label_lists=_flag(env, "CONTROLLER_GATE_LABEL_LISTS", "0"),
            event_namespace=env.get("EVENT_NAMESPACE", "default"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
