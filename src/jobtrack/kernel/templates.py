"""Canned response templates for `template_response` rules.

Rendering is pure: the same template name, variables and job always produce the
same text. Values resolve from the rule's variables, then from the job, then
from a generic placeholder.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from ..contracts.v1 import JobRecord

SENDER_PLACEHOLDER = "[Your Name]"

TEMPLATES: Dict[str, str] = {
    "thank_you": (
        "Dear {{recruiter_name}},\n\n"
        "Thank you for taking the time to speak with me about the {{position}} role at {{company}}. "
        "I enjoyed learning more about the team and I remain very interested in the opportunity.\n\n"
        "Best regards,\n"
        "{{sender_name}}"
    ),
    "application_follow_up": (
        "Dear {{recruiter_name}},\n\n"
        "I wanted to follow up on my application for the {{position}} position at {{company}}. "
        "I am still excited about the role and would welcome the chance to discuss how I can contribute.\n\n"
        "Best regards,\n"
        "{{sender_name}}"
    ),
}

# Any other template name gets a one-line stub instead of an error.
FALLBACK_TEMPLATE = "{{template_name}}: regarding the {{position}} role at {{company}}. - {{sender_name}}"

PLACEHOLDERS: Dict[str, str] = {
    "recruiter_name": "Hiring Manager",
    "position": "open",
    "company": "your company",
}

# Authoring forms send camelCase keys.
_VARIABLE_ALIASES: Dict[str, str] = {
    "recruiterName": "recruiter_name",
    "jobTitle": "position",
    "companyName": "company",
}

_TEMPLATE_VAR_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")


def supported_templates() -> List[str]:
    return sorted(TEMPLATES.keys())


def _render(text: str, *, context: Mapping[str, str]) -> str:
    def _one(m: re.Match[str]) -> str:
        key = str(m.group(1) or "").strip()
        return str(context.get(key, ""))

    return _TEMPLATE_VAR_RE.sub(_one, str(text or ""))


def _normalized_variables(variables: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in (variables or {}).items():
        key = _VARIABLE_ALIASES.get(str(k), str(k))
        value = str(v).strip() if v is not None else ""
        if value:
            out[key] = value
    return out


def template_context(
    template_name: str,
    *,
    variables: Optional[Mapping[str, Any]],
    job: Optional[JobRecord],
) -> Dict[str, str]:
    given = _normalized_variables(variables)
    from_job: Dict[str, str] = {}
    if job is not None:
        from_job = {
            "recruiter_name": str(job.recruiter.name or "").strip(),
            "position": str(job.job_title or "").strip(),
            "company": str(job.company or "").strip(),
        }
    ctx: Dict[str, str] = {}
    for key, placeholder in PLACEHOLDERS.items():
        ctx[key] = given.get(key) or from_job.get(key) or placeholder
    ctx["sender_name"] = SENDER_PLACEHOLDER
    ctx["template_name"] = str(template_name or "").strip()
    return ctx


def render_template_response(
    template_name: str,
    *,
    variables: Optional[Mapping[str, Any]] = None,
    job: Optional[JobRecord] = None,
) -> str:
    name = str(template_name or "").strip()
    template = TEMPLATES.get(name, FALLBACK_TEMPLATE)
    return _render(template, context=template_context(name, variables=variables, job=job)).strip()
