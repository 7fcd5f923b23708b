from __future__ import annotations

from typing import Any, Optional

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def coerce_bool(value: Any, *, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return bool(default)
    if isinstance(value, (int, float)):
        return value != 0
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return bool(default)


def coerce_int(value: Any, *, default: int, min_value: Optional[int] = None) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = int(default)
    if min_value is not None and n < min_value:
        n = int(min_value)
    return n
