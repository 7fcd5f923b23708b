"""Job record store with ownership-scoped mutation methods.

Every read and write is keyed by `(job_id, owner_user_id)`: a job owned by a
different user is indistinguishable from a missing one. Each mutation method
applies one audit-trail shape and appends its `application_history` line in the
same write, so a rule's effect and its audit entry land together or not at all.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from ..contracts.v1 import (
    ApplicationHistoryEntry,
    ApplicationPackage,
    ChecklistItem,
    FollowUpTask,
    JobRecord,
    StatusHistoryEntry,
    TemplateResponseEntry,
)
from ..paths import ensure_home
from ..util.fs import atomic_write_json, read_json
from ..util.time import iso_utc, utc_now_iso

logger = logging.getLogger("jobtrack.kernel.jobs")


def jobs_path(home: Path) -> Path:
    return home / "state" / "jobs.json"


def _append_history(job: JobRecord, action: str, ts: str) -> None:
    job.application_history.append(ApplicationHistoryEntry(action=action, timestamp=ts))


class JobStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load_doc(self) -> Dict[str, Any]:
        raw = read_json(self.path)
        if not isinstance(raw, dict) or not raw:
            return {"v": 1, "updated_at": utc_now_iso(), "jobs": {}}
        doc = dict(raw)
        if not isinstance(doc.get("jobs"), dict):
            doc["jobs"] = {}
        doc.setdefault("v", 1)
        return doc

    def _save_doc(self, doc: Dict[str, Any]) -> None:
        doc["updated_at"] = utc_now_iso()
        atomic_write_json(self.path, doc)

    @staticmethod
    def _owned(raw: Any, owner_user_id: str) -> Optional[JobRecord]:
        if not isinstance(raw, dict):
            return None
        if str(raw.get("owner_user_id") or "") != str(owner_user_id or ""):
            return None
        try:
            return JobRecord.model_validate(raw)
        except Exception as e:
            logger.warning("skipping malformed job record %s: %s", raw.get("id"), e)
            return None

    def _update_owned(
        self,
        job_id: str,
        owner_user_id: str,
        fn: Callable[[JobRecord], None],
    ) -> Optional[JobRecord]:
        jid = str(job_id or "").strip()
        owner = str(owner_user_id or "").strip()
        if not jid or not owner:
            return None
        with self._lock:
            doc = self._load_doc()
            job = self._owned(doc["jobs"].get(jid), owner)
            if job is None:
                return None
            fn(job)
            job.updated_at = utc_now_iso()
            doc["jobs"][jid] = job.model_dump(mode="json")
            self._save_doc(doc)
            return job

    def insert_job(self, job: JobRecord) -> JobRecord:
        with self._lock:
            doc = self._load_doc()
            if job.id in doc["jobs"]:
                raise ValueError(f"job already exists: {job.id}")
            doc["jobs"][job.id] = job.model_dump(mode="json")
            self._save_doc(doc)
        return job

    def get_job(self, job_id: str, *, owner_user_id: str) -> Optional[JobRecord]:
        jid = str(job_id or "").strip()
        with self._lock:
            raw = self._load_doc()["jobs"].get(jid)
        return self._owned(raw, owner_user_id)

    def set_application_package(
        self,
        job_id: str,
        *,
        owner_user_id: str,
        package: ApplicationPackage,
        audit: str,
        at: datetime,
    ) -> Optional[JobRecord]:
        ts = iso_utc(at)

        def _apply(job: JobRecord) -> None:
            job.application_package = package
            _append_history(job, audit, ts)

        return self._update_owned(job_id, owner_user_id, _apply)

    def append_status_if_changed(
        self,
        job_id: str,
        *,
        owner_user_id: str,
        status: str,
        audit: str,
        at: datetime,
        note: str = "",
    ) -> Optional[JobRecord]:
        """Set `status`; add a status_history entry only when it differs from the latest one.

        With an empty history the current status stands in for the latest entry.
        """
        ts = iso_utc(at)

        def _apply(job: JobRecord) -> None:
            latest = job.status_history[-1].status if job.status_history else job.status
            job.status = status  # type: ignore[assignment]
            if latest != status:
                job.status_history.append(StatusHistoryEntry(status=status, timestamp=ts, note=note))  # type: ignore[arg-type]
            _append_history(job, audit, ts)

        return self._update_owned(job_id, owner_user_id, _apply)

    def append_follow_up_task(
        self,
        job_id: str,
        *,
        owner_user_id: str,
        task: FollowUpTask,
        audit: str,
        at: datetime,
    ) -> Optional[JobRecord]:
        ts = iso_utc(at)

        def _apply(job: JobRecord) -> None:
            job.follow_up_tasks.append(task)
            _append_history(job, audit, ts)

        return self._update_owned(job_id, owner_user_id, _apply)

    def add_checklist_items_if_absent(
        self,
        job_id: str,
        *,
        owner_user_id: str,
        labels: Sequence[str],
        audit: str,
        at: datetime,
        auto_complete_on_status: Optional[str] = None,
        source: str = "automation",
    ) -> Optional[JobRecord]:
        """Add items whose label is not on the checklist yet.

        When the job's status equals `auto_complete_on_status`, every open item
        (old and new) is marked complete in the same write.
        """
        ts = iso_utc(at)

        def _apply(job: JobRecord) -> None:
            present = {item.label for item in job.checklist}
            for label in labels:
                if label in present:
                    continue
                job.checklist.append(ChecklistItem(label=label, created_at=ts, source=source))
                present.add(label)
            if auto_complete_on_status and job.status == auto_complete_on_status:
                for item in job.checklist:
                    if not item.completed:
                        item.completed = True
                        item.completed_at = ts
            _append_history(job, audit, ts)

        return self._update_owned(job_id, owner_user_id, _apply)

    def append_template_response(
        self,
        job_id: str,
        *,
        owner_user_id: str,
        response: TemplateResponseEntry,
        audit: str,
        at: datetime,
    ) -> Optional[JobRecord]:
        ts = iso_utc(at)

        def _apply(job: JobRecord) -> None:
            job.template_responses.append(response)
            _append_history(job, audit, ts)

        return self._update_owned(job_id, owner_user_id, _apply)


def open_job_store(home: Optional[Path] = None) -> JobStore:
    return JobStore(jobs_path(home or ensure_home()))
