from __future__ import annotations

import os
from pathlib import Path


def home_dir() -> Path:
    raw = str(os.environ.get("JOBTRACK_HOME") or "").strip()
    return Path(raw).expanduser() if raw else Path.home() / ".jobtrack"


def ensure_home() -> Path:
    home = home_dir()
    (home / "state").mkdir(parents=True, exist_ok=True)
    (home / "daemon").mkdir(parents=True, exist_ok=True)
    return home
