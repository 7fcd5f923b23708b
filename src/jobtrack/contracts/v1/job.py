"""Job record contracts.

Job records belong to the job-tracking collaborator; the automation engine only
touches the audit trails below, always through `kernel.jobs.JobStore`.
"""

from __future__ import annotations

from typing import List, Literal, Optional, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field

from ...util.time import utc_now_iso

JobStatus = Literal["interested", "applied", "phone_screen", "interview", "offer", "rejected"]

JOB_STATUSES: Tuple[str, ...] = get_args(JobStatus)


class Contact(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""

    model_config = ConfigDict(extra="allow")


class ApplicationHistoryEntry(BaseModel):
    action: str
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(extra="forbid")


class StatusHistoryEntry(BaseModel):
    status: JobStatus
    timestamp: str = Field(default_factory=utc_now_iso)
    note: str = ""

    model_config = ConfigDict(extra="forbid")


class ChecklistItem(BaseModel):
    label: str
    completed: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
    completed_at: Optional[str] = None
    source: str = "automation"

    model_config = ConfigDict(extra="forbid")


class FollowUpTask(BaseModel):
    note: str
    created_at: str = Field(default_factory=utc_now_iso)
    completed: bool = False
    type: str = "follow_up"
    interval: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class TemplateResponseEntry(BaseModel):
    template_name: str
    message: str
    created_at: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(extra="forbid")


class ApplicationPackage(BaseModel):
    """Snapshot of the materials assembled for one application (overwritten, never merged)."""

    resume_id: Optional[str] = None
    cover_letter_id: Optional[str] = None
    portfolio_urls: List[str] = Field(default_factory=list)
    generated_at: str = Field(default_factory=utc_now_iso)
    generated_by_rule_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class JobRecord(BaseModel):
    id: str
    owner_user_id: str
    job_title: str = ""
    company: str = ""
    status: JobStatus = "interested"
    recruiter: Contact = Field(default_factory=Contact)

    application_history: List[ApplicationHistoryEntry] = Field(default_factory=list)
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    checklist: List[ChecklistItem] = Field(default_factory=list)
    follow_up_tasks: List[FollowUpTask] = Field(default_factory=list)
    template_responses: List[TemplateResponseEntry] = Field(default_factory=list)
    application_package: Optional[ApplicationPackage] = None

    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    # Fields owned by other parts of the tracker (salary, notes, deadlines...) ride along untouched.
    model_config = ConfigDict(extra="allow")
