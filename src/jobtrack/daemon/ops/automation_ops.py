"""Automation rule management operations.

All ops are scoped to `args.user_id`: a rule owned by someone else reads as
`rule_not_found`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from ...contracts.v1 import IMMEDIATE_RULE_TYPES, JOB_STATUSES, RULE_TYPES, AutomationRule, DaemonError, DaemonResponse
from ...kernel.rules import RuleNotFoundError, RuleStore, new_rule_id
from ...kernel.templates import supported_templates
from ...util.conv import coerce_bool
from ...util.time import iso_utc, parse_utc_iso, utc_now, utc_now_iso
from ..automation import build_rule_status

# Types whose authoring form always asks for a time.
_SCHEDULE_REQUIRED_TYPES = tuple(t for t in RULE_TYPES if t not in IMMEDIATE_RULE_TYPES)


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> DaemonResponse:
    return DaemonResponse(ok=False, error=DaemonError(code=code, message=message, details=(details or {})))


def _user_id(args: Dict[str, Any]) -> str:
    return str(args.get("user_id") or "").strip()


def _rule_out(rule: AutomationRule, *, now: datetime) -> Dict[str, Any]:
    out = rule.model_dump()
    out["status"] = build_rule_status(rule, now=now)
    return out


def _parse_schedule(raw: Any) -> str:
    dt = parse_utc_iso(raw)
    if dt is None:
        raise ValueError("invalid schedule date/time")
    return iso_utc(dt)


def _validate_type(raw: Any) -> str:
    rule_type = str(raw or "").strip()
    if not rule_type:
        raise ValueError("type is required")
    if rule_type not in RULE_TYPES:
        raise ValueError(f"unsupported rule type: {rule_type} (expected one of {', '.join(RULE_TYPES)})")
    return rule_type


def handle_automation_list(args: Dict[str, Any], *, rules: RuleStore, now: datetime) -> DaemonResponse:
    user_id = _user_id(args)
    if not user_id:
        return _error("unauthorized", "missing user_id")
    items = [_rule_out(r, now=now) for r in rules.list_rules(owner_user_id=user_id)]
    return DaemonResponse(
        ok=True,
        result={
            "rules": items,
            "rule_types": list(RULE_TYPES),
            "job_statuses": list(JOB_STATUSES),
            "templates": supported_templates(),
            "server_now": iso_utc(now),
        },
    )


def handle_automation_get(args: Dict[str, Any], *, rules: RuleStore, now: datetime) -> DaemonResponse:
    user_id = _user_id(args)
    if not user_id:
        return _error("unauthorized", "missing user_id")
    rule_id = str(args.get("rule_id") or "").strip()
    rule = rules.get_rule(rule_id, owner_user_id=user_id) if rule_id else None
    if rule is None:
        return _error("rule_not_found", f"rule not found: {rule_id}")
    return DaemonResponse(ok=True, result={"rule": _rule_out(rule, now=now)})


def handle_automation_create(args: Dict[str, Any], *, rules: RuleStore, now: datetime) -> DaemonResponse:
    user_id = _user_id(args)
    if not user_id:
        return _error("unauthorized", "missing user_id")
    raw_config = args.get("config")
    if raw_config is not None and not isinstance(raw_config, dict):
        return _error("invalid_request", "config must be an object")
    try:
        rule_type = _validate_type(args.get("type"))
        raw_schedule = args.get("schedule")
        if rule_type in _SCHEDULE_REQUIRED_TYPES and not str(raw_schedule or "").strip():
            raise ValueError("schedule is required for this rule type")
        if str(raw_schedule or "").strip():
            schedule = _parse_schedule(raw_schedule)
        else:
            # Immediate types run once on the next tick.
            schedule = iso_utc(now)
        rule = AutomationRule(
            id=new_rule_id(),
            owner_user_id=user_id,
            type=rule_type,
            config=dict(raw_config or {}),
            schedule=schedule,
            enabled=coerce_bool(args.get("enabled"), default=True),
        )
        rules.insert_rule(rule)
    except ValueError as e:
        return _error("automation_create_failed", str(e))
    return DaemonResponse(ok=True, result={"rule": _rule_out(rule, now=now)})


def handle_automation_update(args: Dict[str, Any], *, rules: RuleStore, now: datetime) -> DaemonResponse:
    user_id = _user_id(args)
    if not user_id:
        return _error("unauthorized", "missing user_id")
    rule_id = str(args.get("rule_id") or "").strip()
    patch: Dict[str, Any] = {}
    try:
        if args.get("type") is not None:
            patch["type"] = _validate_type(args.get("type"))
        if "schedule" in args:
            patch["schedule"] = _parse_schedule(args.get("schedule"))
        if "config" in args:
            if not isinstance(args.get("config"), dict):
                raise ValueError("config must be an object")
            patch["config"] = dict(args["config"])
        if "enabled" in args:
            patch["enabled"] = coerce_bool(args.get("enabled"), default=True)
        rule = rules.update_rule(rule_id, owner_user_id=user_id, patch=patch)
    except RuleNotFoundError:
        return _error("rule_not_found", f"rule not found: {rule_id}")
    except ValueError as e:
        return _error("automation_update_failed", str(e))
    return DaemonResponse(ok=True, result={"rule": _rule_out(rule, now=now)})


def handle_automation_delete(args: Dict[str, Any], *, rules: RuleStore, now: datetime) -> DaemonResponse:
    user_id = _user_id(args)
    if not user_id:
        return _error("unauthorized", "missing user_id")
    rule_id = str(args.get("rule_id") or "").strip()
    if not rule_id or not rules.delete_rule(rule_id, owner_user_id=user_id):
        return _error("rule_not_found", f"rule not found: {rule_id}")
    return DaemonResponse(ok=True, result={"rule_id": rule_id, "deleted": True, "server_now": iso_utc(now)})


def handle_automation_reset(args: Dict[str, Any], *, rules: RuleStore, now: datetime) -> DaemonResponse:
    """Re-arm a rule so it runs once more (optionally at a new time)."""
    user_id = _user_id(args)
    if not user_id:
        return _error("unauthorized", "missing user_id")
    rule_id = str(args.get("rule_id") or "").strip()
    try:
        schedule = _parse_schedule(args.get("schedule")) if str(args.get("schedule") or "").strip() else None
        rule = rules.reset_rule(rule_id, owner_user_id=user_id, schedule=schedule)
    except RuleNotFoundError:
        return _error("rule_not_found", f"rule not found: {rule_id}")
    except ValueError as e:
        return _error("automation_reset_failed", str(e))
    return DaemonResponse(ok=True, result={"rule": _rule_out(rule, now=now), "reset_at": utc_now_iso()})


_HANDLERS = {
    "automation_list": handle_automation_list,
    "automation_get": handle_automation_get,
    "automation_create": handle_automation_create,
    "automation_update": handle_automation_update,
    "automation_delete": handle_automation_delete,
    "automation_reset": handle_automation_reset,
}


def try_handle_automation_op(
    op: str,
    args: Dict[str, Any],
    *,
    rules: RuleStore,
    now: Optional[datetime] = None,
) -> Optional[DaemonResponse]:
    fn = _HANDLERS.get(op)
    if fn is None:
        return None
    return fn(args, rules=rules, now=now or utc_now())
