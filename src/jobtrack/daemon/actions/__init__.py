"""Action handlers, one per rule type.

Every handler has the signature `run(rule, *, jobs, now) -> ActionResult` and
never raises for invalid config or a missing job; only unexpected failures
(store I/O and the like) escape to the dispatcher.
"""

from __future__ import annotations

from typing import Callable, Dict

from . import application_package, checklist, follow_up, submission_schedule, template_response
from .common import ActionResult

ActionHandler = Callable[..., ActionResult]

ACTION_HANDLERS: Dict[str, ActionHandler] = {
    "application_package": application_package.run,
    "submission_schedule": submission_schedule.run,
    "follow_up": follow_up.run,
    "checklist": checklist.run,
    "template_response": template_response.run,
}

__all__ = ["ACTION_HANDLERS", "ActionHandler", "ActionResult"]
