from __future__ import annotations

from settings import Settings


def test_settings_defaults() -> None:
    s = Settings.from_env({})
    assert s.requeue_seconds == 120.0
    assert s.workers == 2
    assert s.watch_services is True
    assert s.gate_label_lists is False
    assert s.event_namespace == "default"


def test_settings_from_env() -> None:
    s = Settings.from_env(
        {
            "REQUEUE_SECONDS": "30",
            "WORKERS": "0",
            "CONTROLLER_WATCH_SERVICES": "0",
            "CONTROLLER_GATE_LABEL_LISTS": "1",
            "LOG_LEVEL": "debug",
        }
    )
    assert s.requeue_seconds == 30.0
    assert s.workers == 1
    assert s.watch_services is False
    assert s.gate_label_lists is True
    assert s.log_level == "DEBUG"
