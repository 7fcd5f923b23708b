"""Automation engine: due-rule scheduler and rule dispatcher.

Flow per tick:
1. The scheduler asks the rule store for due rules (enabled, scheduled at or
   before now, never run).
2. Each rule goes to the dispatcher, one at a time, in the order returned.
3. The dispatcher runs the rule's action handler and commits `last_run_at`.

Outcomes:
- handler returned (applied or skipped on bad config / missing job): committed, never runs again
- handler raised: error recorded, not committed, retried next tick
- unknown rule type: error recorded, not committed, re-queried every tick until fixed or disabled

Ticks never overlap: a tick that starts while the previous one is still running
is skipped.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..contracts.v1 import RULE_TYPES, AutomationRule
from ..kernel.jobs import JobStore, open_job_store
from ..kernel.rules import RuleStore, is_rule_due, open_rule_store
from ..kernel.settings import AutomationSettings
from ..util.time import parse_utc_iso, utc_now
from .actions import ACTION_HANDLERS, ActionHandler, ActionResult

logger = logging.getLogger("jobtrack.daemon.automation")

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class DispatchOutcome:
    rule_id: str
    status: str  # applied | skipped | failed | unknown_type | already_run
    detail: str = ""
    committed: bool = False


@dataclass
class TickReport:
    started_at: datetime
    skipped: bool = False
    outcomes: List[DispatchOutcome] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)


def _check_handler_table(handlers: Mapping[str, ActionHandler]) -> None:
    missing = [t for t in RULE_TYPES if t not in handlers]
    extra = sorted(t for t in handlers if t not in RULE_TYPES)
    if missing:
        raise ValueError(f"no action handler registered for rule type(s): {', '.join(missing)}")
    if extra:
        raise ValueError(f"action handler(s) registered for unknown rule type(s): {', '.join(extra)}")


def retry_delay_seconds(failure_count: int, *, base_seconds: int, max_seconds: int) -> int:
    """Capped exponential backoff: base, 2*base, 4*base, ... up to max_seconds."""
    if base_seconds <= 0:
        return 0
    exponent = max(0, int(failure_count) - 1)
    # Cap the exponent so huge failure counts don't build huge ints.
    delay = base_seconds * (2 ** min(exponent, 32))
    return int(min(delay, max(1, max_seconds)))


class AutomationDispatcher:
    """Runs one due rule through its action handler and records the outcome."""

    def __init__(
        self,
        *,
        rules: RuleStore,
        jobs: JobStore,
        clock: Clock = utc_now,
        handlers: Optional[Mapping[str, ActionHandler]] = None,
        settings: Optional[AutomationSettings] = None,
    ) -> None:
        table = dict(ACTION_HANDLERS if handlers is None else handlers)
        _check_handler_table(table)
        self._handlers = table
        self.rules = rules
        self.jobs = jobs
        self.clock = clock
        self.settings = settings or AutomationSettings()

    def execute(self, rule: AutomationRule) -> DispatchOutcome:
        rid = rule.id
        rule_type = str(rule.type or "").strip()
        log_extra = {"rule_id": rid, "rule_type": rule_type}

        handler = self._handlers.get(rule_type)
        if handler is None:
            logger.warning(
                "automation rule %s has unsupported type %r; leaving it for an operator",
                rid,
                rule_type,
                extra={"op": "automation_unknown_type", **log_extra},
            )
            self.rules.record_rule_error(
                rid,
                at=self.clock(),
                message=f"unsupported rule type: {rule_type}",
                count_failure=False,
            )
            return DispatchOutcome(rule_id=rid, status="unknown_type", detail=rule_type)

        now = self.clock()
        try:
            result: ActionResult = handler(rule, jobs=self.jobs, now=now)
        except Exception as e:
            logger.exception(
                "automation rule %s (%s) failed; will retry",
                rid,
                rule_type,
                extra={"op": "automation_rule_failed", **log_extra},
            )
            self._record_failure(rule, now=now, error=e)
            return DispatchOutcome(rule_id=rid, status="failed", detail=str(e) or type(e).__name__)

        # One-shot commit point.
        committed = self.rules.mark_rule_run(rid, at=now)
        if not committed:
            logger.warning(
                "automation rule %s was already marked as run by someone else",
                rid,
                extra={"op": "automation_commit_lost", **log_extra},
            )
            return DispatchOutcome(rule_id=rid, status="already_run", detail=result.detail)

        status = "applied" if result.applied else "skipped"
        logger.info(
            "automation rule %s (%s) %s: %s",
            rid,
            rule_type,
            status,
            result.detail,
            extra={"op": "automation_rule_run", "status": status, **log_extra},
        )
        return DispatchOutcome(rule_id=rid, status=status, detail=result.detail, committed=True)

    def _record_failure(self, rule: AutomationRule, *, now: datetime, error: Exception) -> None:
        failures = int(rule.failure_count or 0) + 1
        cfg = self.settings
        dead_letter = cfg.retry_max_failures > 0 and failures >= cfg.retry_max_failures
        next_attempt_at: Optional[datetime] = None
        if not dead_letter and cfg.retry_backoff_seconds > 0:
            delay = retry_delay_seconds(
                failures,
                base_seconds=cfg.retry_backoff_seconds,
                max_seconds=cfg.retry_backoff_max_seconds,
            )
            next_attempt_at = now + timedelta(seconds=delay)
        if dead_letter:
            logger.error(
                "automation rule %s dead-lettered after %d failures",
                rule.id,
                failures,
                extra={"op": "automation_rule_dead_letter", "rule_id": rule.id, "rule_type": rule.type},
            )
        try:
            self.rules.record_rule_error(
                rule.id,
                at=now,
                message=f"{type(error).__name__}: {error}",
                next_attempt_at=next_attempt_at,
                dead_letter=dead_letter,
            )
        except Exception:
            # The store itself may be what failed; the rule simply stays due.
            logger.exception(
                "could not record failure for automation rule %s",
                rule.id,
                extra={"op": "automation_rule_failed", "rule_id": rule.id},
            )


class AutomationScheduler:
    """Feeds due rules to the dispatcher, one tick at a time."""

    def __init__(
        self,
        *,
        rules: RuleStore,
        dispatcher: AutomationDispatcher,
        clock: Clock = utc_now,
        interval_seconds: float = 60.0,
    ) -> None:
        self.rules = rules
        self.dispatcher = dispatcher
        self.clock = clock
        self.interval_seconds = max(1.0, float(interval_seconds))
        self._tick_lock = threading.Lock()

    def tick(self, *, now: Optional[datetime] = None) -> TickReport:
        # Naive clocks and test times are read as UTC, like stored schedules.
        started = parse_utc_iso(now or self.clock()) or utc_now()
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("automation tick skipped: previous tick still running", extra={"op": "automation_tick"})
            return TickReport(started_at=started, skipped=True)
        try:
            report = TickReport(started_at=started)
            try:
                due = self.rules.list_due_rules(started)
            except Exception:
                logger.exception("automation tick could not load due rules", extra={"op": "automation_tick"})
                return report
            for rule in due:
                try:
                    report.outcomes.append(self.dispatcher.execute(rule))
                except Exception as e:
                    # execute() handles handler errors itself; this is a store failure while recording.
                    logger.exception(
                        "automation rule %s could not be dispatched",
                        rule.id,
                        extra={"op": "automation_tick", "rule_id": rule.id},
                    )
                    report.outcomes.append(DispatchOutcome(rule_id=rule.id, status="failed", detail=str(e)))
            if report.outcomes:
                logger.info(
                    "automation tick processed %d rule(s): applied=%d skipped=%d failed=%d unknown_type=%d",
                    len(report.outcomes),
                    report.count("applied"),
                    report.count("skipped"),
                    report.count("failed"),
                    report.count("unknown_type"),
                    extra={"op": "automation_tick"},
                )
            return report
        finally:
            self._tick_lock.release()


def build_rule_status(rule: AutomationRule, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    now_utc = now or utc_now()
    if str(rule.dead_lettered_at or "").strip():
        state = "dead_letter"
    elif str(rule.last_run_at or "").strip():
        state = "completed"
    elif rule.enabled is False:
        state = "disabled"
    elif rule.type not in RULE_TYPES or int(rule.failure_count or 0) > 0:
        state = "failing"
    elif is_rule_due(rule, now_utc):
        state = "due"
    else:
        state = "scheduled"
    scheduled = parse_utc_iso(rule.schedule)
    return {
        "state": state,
        "schedule_valid": scheduled is not None,
        "last_run_at": str(rule.last_run_at or ""),
        "last_error": str(rule.last_error or ""),
        "last_error_at": str(rule.last_error_at or ""),
        "failure_count": int(rule.failure_count or 0),
        "next_attempt_at": str(rule.next_attempt_at or ""),
        "dead_lettered_at": str(rule.dead_lettered_at or ""),
    }


def build_automation_engine(
    home: Path,
    *,
    settings: AutomationSettings,
    clock: Clock = utc_now,
) -> AutomationScheduler:
    rules = open_rule_store(home)
    jobs = open_job_store(home)
    dispatcher = AutomationDispatcher(rules=rules, jobs=jobs, clock=clock, settings=settings)
    return AutomationScheduler(
        rules=rules,
        dispatcher=dispatcher,
        clock=clock,
        interval_seconds=settings.interval_seconds,
    )
