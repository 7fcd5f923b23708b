from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ...contracts.v1 import AutomationRule

logger = logging.getLogger("jobtrack.daemon.actions")

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass(frozen=True)
class ActionResult:
    """What a handler did. Both outcomes count as a completed run for the dispatcher."""

    applied: bool
    detail: str = ""
    job_ids: Tuple[str, ...] = ()


def skipped(detail: str) -> ActionResult:
    return ActionResult(applied=False, detail=detail)


def load_rule_config(rule: AutomationRule, model: Type[ConfigT]) -> Optional[ConfigT]:
    """Validate `rule.config`; invalid config is logged and reported as None."""
    try:
        return model.model_validate(rule.config or {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'config'}: {err.get('msg', '')}" for err in e.errors()
        )
        logger.warning(
            "automation rule %s (%s) has invalid config: %s",
            rule.id,
            rule.type,
            problems,
            extra={"op": "automation_config_invalid", "rule_id": rule.id, "rule_type": rule.type},
        )
        return None


def log_job_not_found(rule: AutomationRule, job_id: str) -> None:
    logger.info(
        "automation rule %s: job %s not found for owner %s",
        rule.id,
        job_id,
        rule.owner_user_id,
        extra={"op": "automation_job_not_found", "rule_id": rule.id, "job_id": job_id},
    )
