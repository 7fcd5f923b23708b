"""`follow_up`: add a reminder task to a job.

Appending is not idempotent; the dispatcher's one-shot commit is what keeps a
rule from adding its task twice. `interval` is stored for display only; the
rule is not re-armed.
"""

from __future__ import annotations

from datetime import datetime

from ...contracts.v1 import AutomationRule, FollowUpConfig, FollowUpTask
from ...kernel.jobs import JobStore
from ...util.time import iso_utc
from .common import ActionResult, load_rule_config, log_job_not_found, skipped


def run(rule: AutomationRule, *, jobs: JobStore, now: datetime) -> ActionResult:
    cfg = load_rule_config(rule, FollowUpConfig)
    if cfg is None:
        return skipped("invalid config")

    task = FollowUpTask(
        note=cfg.message,
        created_at=iso_utc(now),
        completed=False,
        type="follow_up",
        interval=str(cfg.interval) if cfg.interval not in (None, "") else None,
    )
    job = jobs.append_follow_up_task(
        cfg.job_id,
        owner_user_id=rule.owner_user_id,
        task=task,
        audit="Follow-up reminder added by automation",
        at=now,
    )
    if job is None:
        log_job_not_found(rule, cfg.job_id)
        return skipped("job not found")
    return ActionResult(applied=True, detail="follow-up task added", job_ids=(job.id,))
