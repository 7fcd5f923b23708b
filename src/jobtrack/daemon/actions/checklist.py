"""`checklist`: add checklist items by label, optionally auto-completing them."""

from __future__ import annotations

from datetime import datetime

from ...contracts.v1 import AutomationRule, ChecklistConfig
from ...kernel.jobs import JobStore
from .common import ActionResult, load_rule_config, log_job_not_found, skipped


def run(rule: AutomationRule, *, jobs: JobStore, now: datetime) -> ActionResult:
    cfg = load_rule_config(rule, ChecklistConfig)
    if cfg is None:
        return skipped("invalid config")

    labels = cfg.unique_labels()
    job = jobs.add_checklist_items_if_absent(
        cfg.job_id,
        owner_user_id=rule.owner_user_id,
        labels=labels,
        audit=f"Checklist updated by automation ({len(labels)} item(s))",
        at=now,
        auto_complete_on_status=cfg.auto_complete_on_status,
    )
    if job is None:
        log_job_not_found(rule, cfg.job_id)
        return skipped("job not found")
    return ActionResult(applied=True, detail="checklist updated", job_ids=(job.id,))
