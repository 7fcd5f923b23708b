"""Automation rule contracts (user-scoped, one-shot).

A rule is a stored instruction: a type, a due time (`schedule`) and a
type-specific `config`. The scheduler runs each rule at most once; the
commit point is `last_run_at`.

Rule types are declarative and validated per type when the rule executes:
- application_package: attach resume / cover letter / portfolio links to a job
- submission_schedule: move one or more jobs to a new status
- follow_up: add a follow-up reminder task to a job
- checklist: add checklist items (by label) to a job
- template_response: render a canned message and store it on a job
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...util.time import utc_now_iso
from .job import JobStatus

RuleType = Literal[
    "application_package",
    "submission_schedule",
    "follow_up",
    "checklist",
    "template_response",
]

RULE_TYPES: Tuple[str, ...] = get_args(RuleType)

# Types the authoring surface lets users run "now" without picking a time.
IMMEDIATE_RULE_TYPES: Tuple[str, ...] = ("application_package", "checklist", "template_response")

DEFAULT_FOLLOW_UP_MESSAGE = "Follow up on this application"


class AutomationRule(BaseModel):
    id: str
    owner_user_id: str
    # Kept as a plain string: rules are authored elsewhere and an unknown type must
    # still load so the dispatcher can report it instead of the store dropping it.
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    schedule: str
    # Null reads as enabled; only an explicit false disables a rule.
    enabled: Optional[bool] = True
    last_run_at: Optional[str] = None

    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    # Diagnostics for the latest failed attempt.
    last_error: str = ""
    last_error_at: Optional[str] = None
    failure_count: int = 0

    # Only set when the retry policy is enabled in settings.
    next_attempt_at: Optional[str] = None
    dead_lettered_at: Optional[str] = None

    # Other tools add their own fields (names, notes); keep them through rewrites.
    model_config = ConfigDict(extra="allow")


class _RuleConfig(BaseModel):
    # Authoring forms send extra UI fields (e.g. the selected question); ignore them.
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class ApplicationPackageConfig(_RuleConfig):
    job_id: str = Field(min_length=1)
    resume_id: Optional[str] = None
    cover_letter_id: Optional[str] = None
    portfolio_url: Optional[str] = None
    portfolio_urls: List[str] = Field(default_factory=list)

    def merged_portfolio_urls(self) -> List[str]:
        urls: List[str] = []
        for raw in [*(self.portfolio_urls or []), self.portfolio_url or ""]:
            url = str(raw or "").strip()
            if url and url not in urls:
                urls.append(url)
        return urls

    def has_materials(self) -> bool:
        return bool(self.resume_id or self.cover_letter_id or self.merged_portfolio_urls())


class SubmissionScheduleConfig(_RuleConfig):
    job_id: Optional[str] = None
    job_ids: List[str] = Field(default_factory=list)
    new_status: JobStatus

    @model_validator(mode="after")
    def _require_target(self) -> "SubmissionScheduleConfig":
        if not self.target_job_ids():
            raise ValueError("job_id or job_ids is required")
        return self

    def target_job_ids(self) -> List[str]:
        out: List[str] = []
        for raw in [self.job_id or "", *(self.job_ids or [])]:
            jid = str(raw or "").strip()
            if jid and jid not in out:
                out.append(jid)
        return out


class FollowUpConfig(_RuleConfig):
    job_id: str = Field(min_length=1)
    message: str = DEFAULT_FOLLOW_UP_MESSAGE
    interval: Optional[Union[int, str]] = None

    @field_validator("message", mode="before")
    @classmethod
    def _default_blank_message(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_FOLLOW_UP_MESSAGE
        return v


class ChecklistItemSpec(BaseModel):
    label: str = Field(min_length=1)

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class ChecklistConfig(_RuleConfig):
    job_id: str = Field(min_length=1)
    items: List[ChecklistItemSpec] = Field(min_length=1)
    auto_complete_on_status: Optional[JobStatus] = None

    @field_validator("items", mode="before")
    @classmethod
    def _accept_bare_labels(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"label": item} if isinstance(item, str) else item for item in v]
        return v

    def unique_labels(self) -> List[str]:
        out: List[str] = []
        for item in self.items:
            if item.label not in out:
                out.append(item.label)
        return out


class TemplateResponseConfig(_RuleConfig):
    job_id: str = Field(min_length=1)
    template_name: str = Field(min_length=1)
    variables: Dict[str, Any] = Field(default_factory=dict)
