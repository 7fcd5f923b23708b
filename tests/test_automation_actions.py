import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class TestAutomationActions(unittest.TestCase):
    def setUp(self) -> None:
        from jobtrack.kernel.jobs import JobStore, jobs_path

        self._td = tempfile.TemporaryDirectory()
        self.jobs = JobStore(jobs_path(Path(self._td.name)))

    def tearDown(self) -> None:
        self._td.cleanup()

    def _job(self, job_id: str, owner: str = "U1", **fields):
        from jobtrack.contracts.v1 import JobRecord

        fields.setdefault("job_title", "Data Engineer")
        fields.setdefault("company", "Acme")
        return self.jobs.insert_job(JobRecord(id=job_id, owner_user_id=owner, **fields))

    def _rule(self, rule_type: str, config: dict, *, rule_id: str = "R1", owner: str = "U1"):
        from jobtrack.contracts.v1 import AutomationRule

        return AutomationRule(id=rule_id, owner_user_id=owner, type=rule_type, config=config, schedule="2025-03-01T09:00:00Z")

    def _run(self, rule):
        from jobtrack.daemon.actions import ACTION_HANDLERS

        return ACTION_HANDLERS[rule.type](rule, jobs=self.jobs, now=NOW)

    def _get(self, job_id: str, owner: str = "U1"):
        job = self.jobs.get_job(job_id, owner_user_id=owner)
        assert job is not None
        return job

    def test_rules_never_touch_jobs_of_other_owners(self) -> None:
        self._job("J1", owner="U2")
        before = self._get("J1", owner="U2").model_dump()

        cases = [
            ("application_package", {"job_id": "J1", "resume_id": "res_1"}),
            ("submission_schedule", {"job_id": "J1", "new_status": "applied"}),
            ("follow_up", {"job_id": "J1"}),
            ("checklist", {"job_id": "J1", "items": ["Research company"]}),
            ("template_response", {"job_id": "J1", "template_name": "thank_you"}),
        ]
        for rule_type, config in cases:
            with self.subTest(rule_type=rule_type):
                result = self._run(self._rule(rule_type, config, owner="U1"))
                self.assertFalse(result.applied)
        self.assertEqual(self._get("J1", owner="U2").model_dump(), before)
        self.assertIsNone(self.jobs.get_job("J1", owner_user_id="U1"))

    def test_application_package_overwrites_previous_package(self) -> None:
        self._job("J1")
        first = self._run(
            self._rule(
                "application_package",
                {"job_id": "J1", "resume_id": "res_1", "portfolio_url": "https://example.com/me"},
            )
        )
        self.assertTrue(first.applied)
        job = self._get("J1")
        assert job.application_package is not None
        self.assertEqual(job.application_package.resume_id, "res_1")
        self.assertEqual(job.application_package.portfolio_urls, ["https://example.com/me"])
        self.assertEqual(job.application_package.generated_by_rule_id, "R1")
        self.assertEqual(job.application_history[-1].action, "Application package assembled by automation")

        self._run(self._rule("application_package", {"job_id": "J1", "cover_letter_id": "cl_9"}, rule_id="R2"))
        job = self._get("J1")
        assert job.application_package is not None
        self.assertIsNone(job.application_package.resume_id)
        self.assertEqual(job.application_package.cover_letter_id, "cl_9")
        self.assertEqual(job.application_package.portfolio_urls, [])
        self.assertEqual(len(job.application_history), 2)

    def test_application_package_without_materials_is_skipped(self) -> None:
        self._job("J1")
        with self.assertLogs("jobtrack.daemon.actions", level="WARNING"):
            result = self._run(self._rule("application_package", {"job_id": "J1", "portfolio_urls": ["  "]}))
        self.assertFalse(result.applied)
        self.assertEqual(result.detail, "no materials selected")
        job = self._get("J1")
        self.assertIsNone(job.application_package)
        self.assertEqual(job.application_history, [])

    def test_status_history_only_records_changes(self) -> None:
        self._job("J1", status="interested")

        self._run(self._rule("submission_schedule", {"job_id": "J1", "new_status": "interested"}))
        self.assertEqual(self._get("J1").status_history, [])

        self._run(self._rule("submission_schedule", {"job_id": "J1", "new_status": "applied"}))
        self._run(self._rule("submission_schedule", {"job_id": "J1", "new_status": "applied"}))
        job = self._get("J1")
        self.assertEqual(job.status, "applied")
        self.assertEqual([h.status for h in job.status_history], ["applied"])
        self.assertEqual(job.status_history[0].note, "automation")
        self.assertEqual(len(job.application_history), 3)
        self.assertEqual(job.application_history[-1].action, "Status set to applied by scheduled automation")

    def test_status_dedup_compares_against_latest_history_entry(self) -> None:
        from jobtrack.contracts.v1 import StatusHistoryEntry

        self._job(
            "J1",
            status="interview",
            status_history=[StatusHistoryEntry(status="phone_screen", timestamp="2025-02-01T00:00:00Z")],
        )
        self._run(self._rule("submission_schedule", {"job_id": "J1", "new_status": "interview"}))
        job = self._get("J1")
        self.assertEqual([h.status for h in job.status_history], ["phone_screen", "interview"])

    def test_submission_schedule_updates_every_owned_target(self) -> None:
        self._job("J1")
        self._job("J2")
        self._job("J3", owner="U2")
        result = self._run(
            self._rule("submission_schedule", {"job_ids": ["J1", "J2", "J3", "missing"], "new_status": "offer"})
        )
        self.assertTrue(result.applied)
        self.assertEqual(result.job_ids, ("J1", "J2"))
        self.assertEqual(self._get("J1").status, "offer")
        self.assertEqual(self._get("J2").status, "offer")
        self.assertEqual(self._get("J3", owner="U2").status, "interested")

    def test_invalid_status_is_a_no_op(self) -> None:
        self._job("J1")
        before = self._get("J1").model_dump()
        with self.assertLogs("jobtrack.daemon.actions", level="WARNING") as logs:
            result = self._run(self._rule("submission_schedule", {"job_id": "J1", "new_status": "hired"}))
        self.assertFalse(result.applied)
        self.assertIn("new_status", "\n".join(logs.output))
        self.assertEqual(self._get("J1").model_dump(), before)

    def test_follow_up_defaults_blank_message(self) -> None:
        self._job("J1")
        self._run(self._rule("follow_up", {"job_id": "J1", "message": "   ", "interval": 7}))
        job = self._get("J1")
        self.assertEqual(len(job.follow_up_tasks), 1)
        task = job.follow_up_tasks[0]
        self.assertEqual(task.note, "Follow up on this application")
        self.assertEqual(task.type, "follow_up")
        self.assertEqual(task.interval, "7")
        self.assertFalse(task.completed)
        self.assertEqual(task.created_at, "2025-03-01T09:00:00Z")
        self.assertEqual(job.application_history[-1].action, "Follow-up reminder added by automation")

    def test_follow_up_without_job_id_is_skipped(self) -> None:
        self._job("J1")
        with self.assertLogs("jobtrack.daemon.actions", level="WARNING"):
            result = self._run(self._rule("follow_up", {"message": "ping"}))
        self.assertFalse(result.applied)
        self.assertEqual(self._get("J1").follow_up_tasks, [])

    def test_checklist_labels_behave_as_a_set(self) -> None:
        self._job("J1")
        self._run(
            self._rule(
                "checklist",
                {"job_id": "J1", "items": [{"label": "Tailor resume"}, {"label": "Tailor resume"}, "Research company"]},
            )
        )
        job = self._get("J1")
        self.assertEqual([i.label for i in job.checklist], ["Tailor resume", "Research company"])
        self.assertEqual(job.application_history[-1].action, "Checklist updated by automation (2 item(s))")

        self._run(self._rule("checklist", {"job_id": "J1", "items": ["Research company", "Prepare references"]}))
        job = self._get("J1")
        labels = [i.label for i in job.checklist]
        self.assertEqual(labels, ["Tailor resume", "Research company", "Prepare references"])
        self.assertEqual(len(labels), len(set(labels)))
        self.assertTrue(all(not i.completed for i in job.checklist))

    def test_checklist_auto_completes_when_status_matches(self) -> None:
        self._job("J1", status="applied")
        self._run(
            self._rule(
                "checklist",
                {"job_id": "J1", "items": ["Send thank-you note"], "auto_complete_on_status": "applied"},
            )
        )
        job = self._get("J1")
        self.assertEqual(len(job.checklist), 1)
        self.assertTrue(job.checklist[0].completed)
        self.assertEqual(job.checklist[0].completed_at, "2025-03-01T09:00:00Z")

    def test_checklist_without_items_is_skipped(self) -> None:
        self._job("J1")
        with self.assertLogs("jobtrack.daemon.actions", level="WARNING"):
            result = self._run(self._rule("checklist", {"job_id": "J1", "items": []}))
        self.assertFalse(result.applied)
        self.assertEqual(self._get("J1").checklist, [])

    def test_template_response_fills_from_job(self) -> None:
        from jobtrack.contracts.v1 import Contact

        self._job("J1", recruiter=Contact(name="Dana"))
        result = self._run(self._rule("template_response", {"job_id": "J1", "template_name": "thank_you"}))
        self.assertTrue(result.applied)
        job = self._get("J1")
        self.assertEqual(len(job.template_responses), 1)
        entry = job.template_responses[0]
        self.assertEqual(entry.template_name, "thank_you")
        self.assertTrue(entry.message.startswith("Dear Dana,"))
        self.assertIn("Data Engineer", entry.message)
        self.assertIn("Acme", entry.message)
        self.assertTrue(entry.message.endswith("[Your Name]"))
        self.assertEqual(job.application_history[-1].action, "Template response 'thank_you' generated by automation")

    def test_template_response_variables_override_job_fields(self) -> None:
        from jobtrack.contracts.v1 import Contact

        self._job("J1", recruiter=Contact(name="Dana"))
        self._run(
            self._rule(
                "template_response",
                {"job_id": "J1", "template_name": "application_follow_up", "variables": {"recruiterName": "Sam"}},
            )
        )
        message = self._get("J1").template_responses[0].message
        self.assertTrue(message.startswith("Dear Sam,"))
        self.assertIn("Data Engineer position at Acme", message)

    def test_template_response_for_missing_job_is_skipped(self) -> None:
        result = self._run(self._rule("template_response", {"job_id": "nope", "template_name": "thank_you"}))
        self.assertFalse(result.applied)
        self.assertEqual(result.detail, "job not found")


if __name__ == "__main__":
    unittest.main()
