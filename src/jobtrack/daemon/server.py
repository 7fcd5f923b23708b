from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Any, Optional, Tuple

logger = logging.getLogger("jobtrack.daemon.server")

from .. import __version__
from ..contracts.v1 import DaemonError, DaemonRequest, DaemonResponse
from ..kernel.rules import open_rule_store
from ..kernel.settings import get_automation_settings
from ..paths import ensure_home
from ..util.file_lock import LockUnavailableError, acquire_lockfile, release_lockfile
from ..util.obslog import setup_root_json_logging
from .automation import build_automation_engine
from .ops.automation_ops import try_handle_automation_op
from .serve_ops import start_automation_thread


def handle_request(req: DaemonRequest, *, home: Optional[Path] = None) -> Tuple[DaemonResponse, bool]:
    """In-process request entry point. Returns (response, should_exit)."""
    op = str(req.op or "").strip()
    args = req.args if isinstance(req.args, dict) else {}
    if op == "ping":
        return DaemonResponse(ok=True, result={"version": __version__}), False
    if op == "shutdown":
        return DaemonResponse(ok=True, result={"message": "shutting down"}), True
    resp = try_handle_automation_op(op, args, rules=open_rule_store(home or ensure_home()))
    if resp is not None:
        return resp, False
    return DaemonResponse(ok=False, error=DaemonError(code="unknown_op", message=f"unknown op: {op}")), False


def serve_forever(home: Optional[Path] = None, *, stop_event: Optional[threading.Event] = None) -> int:
    h = home or ensure_home()
    settings = get_automation_settings(h)
    setup_root_json_logging(component="daemon", level=settings.log_level, force=True)

    # One engine per home: a second instance would execute the same rules again.
    lock_path = h / "daemon" / "jobtrackd.lock"
    try:
        lock_handle = acquire_lockfile(lock_path, blocking=False)
    except LockUnavailableError:
        logger.warning("another jobtrack daemon holds %s; exiting", lock_path)
        return 0

    stop = stop_event or threading.Event()

    def _signal_handler(signum: int, frame: Any) -> None:
        stop.set()

    if stop_event is None:
        signal.signal(signal.SIGTERM, _signal_handler)
        signal.signal(signal.SIGINT, _signal_handler)

    try:
        if not settings.enabled:
            logger.info("automation disabled by settings; daemon idle", extra={"op": "serve"})
        else:
            scheduler = build_automation_engine(h, settings=settings)
            start_automation_thread(
                stop_event=stop,
                automation_tick=scheduler.tick,
                interval_seconds=scheduler.interval_seconds,
            )
            logger.info(
                "jobtrack daemon %s started (home=%s interval=%ss)",
                __version__,
                h,
                scheduler.interval_seconds,
                extra={"op": "serve"},
            )
        while not stop.is_set():
            stop.wait(1.0)
    finally:
        stop.set()
        release_lockfile(lock_handle)
        logger.info("jobtrack daemon stopped", extra={"op": "serve"})
    return 0


def main() -> int:
    return serve_forever()


if __name__ == "__main__":  # pragma: no cover - console entry point
    raise SystemExit(main())
