"""Engine settings: `settings.yaml` under the home, then environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..paths import ensure_home
from ..util.conv import coerce_bool, coerce_int

logger = logging.getLogger("jobtrack.kernel.settings")

_ENV_PREFIX = "JOBTRACK_AUTOMATION_"


@dataclass(frozen=True)
class AutomationSettings:
    enabled: bool = True
    interval_seconds: int = 60          # Scheduler tick interval
    log_level: str = "INFO"

    # Retry policy for rules whose handler raised. Both 0 = retry every tick, forever.
    retry_max_failures: int = 0         # Dead-letter after this many failures (0 to disable)
    retry_backoff_seconds: int = 0      # Base delay, doubled per failure (0 to disable)
    retry_backoff_max_seconds: int = 3600


def settings_path(home: Path) -> Path:
    return home / "settings.yaml"


def _load_yaml_section(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("ignoring unreadable settings file %s: %s", path, e)
        return {}
    if not isinstance(doc, dict):
        return {}
    section = doc.get("automation")
    return dict(section) if isinstance(section, dict) else {}


def get_automation_settings(home: Optional[Path] = None) -> AutomationSettings:
    d = _load_yaml_section(settings_path(home or ensure_home()))

    def _raw(key: str) -> Any:
        env = os.environ.get(_ENV_PREFIX + key.upper())
        if env is not None and env.strip():
            return env
        return d.get(key)

    defaults = AutomationSettings()

    def _int(key: str, default: int, min_value: int) -> int:
        raw = _raw(key)
        if raw is None:
            return default
        return coerce_int(raw, default=default, min_value=min_value)

    level = str(os.environ.get("JOBTRACK_LOG_LEVEL") or d.get("log_level") or defaults.log_level).strip().upper()

    return AutomationSettings(
        enabled=coerce_bool(_raw("enabled"), default=defaults.enabled),
        interval_seconds=_int("interval_seconds", defaults.interval_seconds, 1),
        log_level=level or defaults.log_level,
        retry_max_failures=_int("retry_max_failures", defaults.retry_max_failures, 0),
        retry_backoff_seconds=_int("retry_backoff_seconds", defaults.retry_backoff_seconds, 0),
        retry_backoff_max_seconds=_int("retry_backoff_max_seconds", defaults.retry_backoff_max_seconds, 1),
    )
