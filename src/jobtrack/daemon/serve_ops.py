from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger("jobtrack.daemon.server")


def start_automation_thread(
    *,
    stop_event: threading.Event,
    automation_tick: Callable[[], Any],
    interval_seconds: float,
) -> threading.Thread:
    interval = max(1.0, float(interval_seconds))

    def _automation_loop() -> None:
        while not stop_event.is_set():
            try:
                automation_tick()
            except Exception:
                logger.exception("automation tick crashed", extra={"op": "automation_tick"})
            stop_event.wait(interval)

    t = threading.Thread(target=_automation_loop, name="jobtrack-automation", daemon=True)
    t.start()
    return t
