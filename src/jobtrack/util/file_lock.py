from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import IO


class LockUnavailableError(RuntimeError):
    pass


def acquire_lockfile(path: Path, *, blocking: bool = False) -> IO[str]:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    handle = open(p, "a+", encoding="utf-8")
    flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
    try:
        fcntl.flock(handle.fileno(), flags)
    except OSError as e:
        handle.close()
        raise LockUnavailableError(f"lock held: {p}") from e
    handle.seek(0)
    handle.truncate()
    handle.write(f"{os.getpid()}\n")
    handle.flush()
    return handle


def release_lockfile(handle: IO[str]) -> None:
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()
