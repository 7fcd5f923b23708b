"""`template_response`: render a canned message and store it on the job."""

from __future__ import annotations

from datetime import datetime

from ...contracts.v1 import AutomationRule, TemplateResponseConfig, TemplateResponseEntry
from ...kernel.jobs import JobStore
from ...kernel.templates import render_template_response
from ...util.time import iso_utc
from .common import ActionResult, load_rule_config, log_job_not_found, skipped


def run(rule: AutomationRule, *, jobs: JobStore, now: datetime) -> ActionResult:
    cfg = load_rule_config(rule, TemplateResponseConfig)
    if cfg is None:
        return skipped("invalid config")

    # Read first so job fields can fill in missing variables.
    current = jobs.get_job(cfg.job_id, owner_user_id=rule.owner_user_id)
    if current is None:
        log_job_not_found(rule, cfg.job_id)
        return skipped("job not found")

    message = render_template_response(cfg.template_name, variables=cfg.variables, job=current)
    job = jobs.append_template_response(
        cfg.job_id,
        owner_user_id=rule.owner_user_id,
        response=TemplateResponseEntry(template_name=cfg.template_name, message=message, created_at=iso_utc(now)),
        audit=f"Template response '{cfg.template_name}' generated by automation",
        at=now,
    )
    if job is None:
        log_job_not_found(rule, cfg.job_id)
        return skipped("job not found")
    return ActionResult(applied=True, detail="template response stored", job_ids=(job.id,))
