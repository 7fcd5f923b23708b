"""`application_package`: attach the chosen materials to a job (overwrite)."""

from __future__ import annotations

from datetime import datetime

from ...contracts.v1 import ApplicationPackage, ApplicationPackageConfig, AutomationRule
from ...kernel.jobs import JobStore
from ...util.time import iso_utc
from .common import ActionResult, load_rule_config, log_job_not_found, logger, skipped


def run(rule: AutomationRule, *, jobs: JobStore, now: datetime) -> ActionResult:
    cfg = load_rule_config(rule, ApplicationPackageConfig)
    if cfg is None:
        return skipped("invalid config")
    if not cfg.has_materials():
        logger.warning(
            "automation rule %s: application package needs a resume, cover letter or portfolio url",
            rule.id,
            extra={"op": "automation_config_invalid", "rule_id": rule.id, "rule_type": rule.type},
        )
        return skipped("no materials selected")

    package = ApplicationPackage(
        resume_id=cfg.resume_id or None,
        cover_letter_id=cfg.cover_letter_id or None,
        portfolio_urls=cfg.merged_portfolio_urls(),
        generated_at=iso_utc(now),
        generated_by_rule_id=rule.id,
    )
    job = jobs.set_application_package(
        cfg.job_id,
        owner_user_id=rule.owner_user_id,
        package=package,
        audit="Application package assembled by automation",
        at=now,
    )
    if job is None:
        log_job_not_found(rule, cfg.job_id)
        return skipped("job not found")
    return ActionResult(applied=True, detail="application package saved", job_ids=(job.id,))
