"""Durable automation rule store.

Rules live in one JSON document under the engine home:

    state/automation_rules.json  ->  {"v": 1, "updated_at": ..., "rules": {rule_id: rule}}

The store is the only writer of that document. Every read-modify-write happens
under the store lock, so a rule's one-shot commit (`mark_rule_run`) cannot
interleave with an edit made from another thread.
"""

from __future__ import annotations

import logging
import secrets
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..contracts.v1 import AutomationRule
from ..paths import ensure_home
from ..util.fs import atomic_write_json, read_json
from ..util.time import iso_utc, parse_utc_iso, utc_now_iso

logger = logging.getLogger("jobtrack.kernel.rules")

# Fields an owner may edit through the management ops.
EDITABLE_RULE_FIELDS = ("type", "schedule", "config", "enabled")


class RuleNotFoundError(LookupError):
    pass


def new_rule_id() -> str:
    return f"ar_{secrets.token_hex(6)}"


def rules_path(home: Path) -> Path:
    return home / "state" / "automation_rules.json"


def is_rule_due(rule: AutomationRule, now: datetime) -> bool:
    """Eligibility: enabled, scheduled at or before now, never run.

    `dead_lettered_at` / `next_attempt_at` are only ever set by the opt-in retry policy.
    A naive `now` is read as UTC.
    """
    now = parse_utc_iso(now) or now
    if rule.enabled is False:
        return False
    if str(rule.last_run_at or "").strip():
        return False
    if str(rule.dead_lettered_at or "").strip():
        return False
    scheduled = parse_utc_iso(rule.schedule)
    if scheduled is None or scheduled > now:
        return False
    if rule.next_attempt_at:
        retry_at = parse_utc_iso(rule.next_attempt_at)
        if retry_at is not None and retry_at > now:
            return False
    return True


def _new_rules_doc() -> Dict[str, Any]:
    return {"v": 1, "updated_at": utc_now_iso(), "rules": {}}


class RuleStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load_doc(self) -> Dict[str, Any]:
        raw = read_json(self.path)
        if not isinstance(raw, dict) or not raw:
            return _new_rules_doc()
        doc = dict(raw)
        if not isinstance(doc.get("rules"), dict):
            doc["rules"] = {}
        doc.setdefault("v", 1)
        return doc

    def _save_doc(self, doc: Dict[str, Any]) -> None:
        doc["updated_at"] = utc_now_iso()
        atomic_write_json(self.path, doc)

    def _rules(self, doc: Dict[str, Any]) -> List[AutomationRule]:
        out: List[AutomationRule] = []
        raw_rules = doc.get("rules") if isinstance(doc.get("rules"), dict) else {}
        for rid, raw in raw_rules.items():
            if not isinstance(raw, dict):
                continue
            try:
                rule = AutomationRule.model_validate(raw)
            except Exception as e:
                logger.warning("skipping malformed automation rule %s: %s", rid, e)
                continue
            if rule.id != rid:
                continue
            out.append(rule)
        return out

    def _mutate(self, rule_id: str, fn: Callable[[AutomationRule], bool]) -> Optional[AutomationRule]:
        """Apply `fn` to one rule under the lock; persist only when it returns True."""
        rid = str(rule_id or "").strip()
        with self._lock:
            doc = self._load_doc()
            raw = doc["rules"].get(rid)
            if not isinstance(raw, dict):
                return None
            rule = AutomationRule.model_validate(raw)
            if not fn(rule):
                return None
            rule.updated_at = utc_now_iso()
            doc["rules"][rid] = rule.model_dump()
            self._save_doc(doc)
            return rule

    def list_rules(self, *, owner_user_id: Optional[str] = None) -> List[AutomationRule]:
        with self._lock:
            rules = self._rules(self._load_doc())
        if owner_user_id is not None:
            rules = [r for r in rules if r.owner_user_id == owner_user_id]
        rules.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return rules

    def get_rule(self, rule_id: str, *, owner_user_id: Optional[str] = None) -> Optional[AutomationRule]:
        rid = str(rule_id or "").strip()
        with self._lock:
            raw = self._load_doc()["rules"].get(rid)
        if not isinstance(raw, dict):
            return None
        try:
            rule = AutomationRule.model_validate(raw)
        except Exception:
            return None
        if owner_user_id is not None and rule.owner_user_id != owner_user_id:
            return None
        return rule

    def list_due_rules(self, now: datetime) -> List[AutomationRule]:
        """All due rules, ordered by schedule then id (stable across a tick)."""
        now = parse_utc_iso(now) or now
        with self._lock:
            rules = self._rules(self._load_doc())
        due = [r for r in rules if is_rule_due(r, now)]
        due.sort(key=lambda r: (parse_utc_iso(r.schedule) or now, r.id))
        return due

    def insert_rule(self, rule: AutomationRule) -> AutomationRule:
        with self._lock:
            doc = self._load_doc()
            if rule.id in doc["rules"]:
                raise ValueError(f"rule already exists: {rule.id}")
            doc["rules"][rule.id] = rule.model_dump()
            self._save_doc(doc)
        return rule

    def update_rule(self, rule_id: str, *, owner_user_id: str, patch: Dict[str, Any]) -> AutomationRule:
        unknown = sorted(k for k in patch if k not in EDITABLE_RULE_FIELDS)
        if unknown:
            raise ValueError(f"fields not editable: {', '.join(unknown)}")

        def _apply(rule: AutomationRule) -> bool:
            if rule.owner_user_id != owner_user_id:
                return False
            validated = AutomationRule.model_validate({**rule.model_dump(), **patch})
            for key in patch:
                setattr(rule, key, getattr(validated, key))
            return True

        updated = self._mutate(rule_id, _apply)
        if updated is None:
            raise RuleNotFoundError(rule_id)
        return updated

    def delete_rule(self, rule_id: str, *, owner_user_id: str) -> bool:
        rid = str(rule_id or "").strip()
        with self._lock:
            doc = self._load_doc()
            raw = doc["rules"].get(rid)
            if not isinstance(raw, dict) or str(raw.get("owner_user_id") or "") != owner_user_id:
                return False
            doc["rules"].pop(rid, None)
            self._save_doc(doc)
        return True

    def reset_rule(self, rule_id: str, *, owner_user_id: str, schedule: Optional[str] = None) -> AutomationRule:
        """Re-arm a rule: clear the run marker and any retry state."""

        def _apply(rule: AutomationRule) -> bool:
            if rule.owner_user_id != owner_user_id:
                return False
            rule.last_run_at = None
            rule.last_error = ""
            rule.last_error_at = None
            rule.failure_count = 0
            rule.next_attempt_at = None
            rule.dead_lettered_at = None
            if schedule is not None:
                rule.schedule = schedule
            return True

        updated = self._mutate(rule_id, _apply)
        if updated is None:
            raise RuleNotFoundError(rule_id)
        return updated

    def mark_rule_run(self, rule_id: str, *, at: datetime) -> bool:
        """One-shot commit. Only succeeds while `last_run_at` is still empty."""

        def _apply(rule: AutomationRule) -> bool:
            if str(rule.last_run_at or "").strip():
                return False
            rule.last_run_at = iso_utc(at)
            rule.last_error = ""
            rule.last_error_at = None
            rule.next_attempt_at = None
            return True

        return self._mutate(rule_id, _apply) is not None

    def record_rule_error(
        self,
        rule_id: str,
        *,
        at: datetime,
        message: str,
        count_failure: bool = True,
        next_attempt_at: Optional[datetime] = None,
        dead_letter: bool = False,
    ) -> Optional[AutomationRule]:
        msg = str(message or "").strip()[:500]

        def _apply(rule: AutomationRule) -> bool:
            if not count_failure and rule.last_error == msg:
                return False
            rule.last_error = msg
            rule.last_error_at = iso_utc(at)
            if count_failure:
                rule.failure_count = int(rule.failure_count or 0) + 1
            rule.next_attempt_at = iso_utc(next_attempt_at) if next_attempt_at is not None else None
            if dead_letter:
                rule.dead_lettered_at = iso_utc(at)
            return True

        return self._mutate(rule_id, _apply)


def open_rule_store(home: Optional[Path] = None) -> RuleStore:
    return RuleStore(rules_path(home or ensure_home()))
