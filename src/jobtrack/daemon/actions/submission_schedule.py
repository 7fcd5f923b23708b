"""`submission_schedule`: move jobs to a new status at the scheduled time."""

from __future__ import annotations

from datetime import datetime
from typing import List

from ...contracts.v1 import AutomationRule, SubmissionScheduleConfig
from ...kernel.jobs import JobStore
from .common import ActionResult, load_rule_config, log_job_not_found, skipped


def run(rule: AutomationRule, *, jobs: JobStore, now: datetime) -> ActionResult:
    # An unknown status fails validation here, before any job is touched.
    cfg = load_rule_config(rule, SubmissionScheduleConfig)
    if cfg is None:
        return skipped("invalid config")

    updated: List[str] = []
    for job_id in cfg.target_job_ids():
        job = jobs.append_status_if_changed(
            job_id,
            owner_user_id=rule.owner_user_id,
            status=cfg.new_status,
            audit=f"Status set to {cfg.new_status} by scheduled automation",
            at=now,
            note="automation",
        )
        if job is None:
            log_job_not_found(rule, job_id)
            continue
        updated.append(job.id)

    if not updated:
        return skipped("no jobs found")
    return ActionResult(applied=True, detail=f"status -> {cfg.new_status}", job_ids=tuple(updated))
