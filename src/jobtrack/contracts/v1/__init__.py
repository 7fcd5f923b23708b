from .automation import (
    DEFAULT_FOLLOW_UP_MESSAGE,
    IMMEDIATE_RULE_TYPES,
    RULE_TYPES,
    ApplicationPackageConfig,
    AutomationRule,
    ChecklistConfig,
    ChecklistItemSpec,
    FollowUpConfig,
    RuleType,
    SubmissionScheduleConfig,
    TemplateResponseConfig,
)
from .ipc import DaemonError, DaemonRequest, DaemonResponse
from .job import (
    JOB_STATUSES,
    ApplicationHistoryEntry,
    ApplicationPackage,
    ChecklistItem,
    Contact,
    FollowUpTask,
    JobRecord,
    JobStatus,
    StatusHistoryEntry,
    TemplateResponseEntry,
)

__all__ = [
    "DEFAULT_FOLLOW_UP_MESSAGE",
    "IMMEDIATE_RULE_TYPES",
    "JOB_STATUSES",
    "RULE_TYPES",
    "ApplicationHistoryEntry",
    "ApplicationPackage",
    "ApplicationPackageConfig",
    "AutomationRule",
    "ChecklistConfig",
    "ChecklistItem",
    "ChecklistItemSpec",
    "Contact",
    "DaemonError",
    "DaemonRequest",
    "DaemonResponse",
    "FollowUpConfig",
    "FollowUpTask",
    "JobRecord",
    "JobStatus",
    "RuleType",
    "StatusHistoryEntry",
    "SubmissionScheduleConfig",
    "TemplateResponseConfig",
    "TemplateResponseEntry",
]
