import os
import tempfile
import unittest
from pathlib import Path


class TestAutomationOps(unittest.TestCase):
    def _with_home(self):
        old_home = os.environ.get("JOBTRACK_HOME")
        td_ctx = tempfile.TemporaryDirectory()
        td = td_ctx.__enter__()
        os.environ["JOBTRACK_HOME"] = td

        def cleanup() -> None:
            td_ctx.__exit__(None, None, None)
            if old_home is None:
                os.environ.pop("JOBTRACK_HOME", None)
            else:
                os.environ["JOBTRACK_HOME"] = old_home

        return td, cleanup

    def _call(self, op: str, args: dict):
        from jobtrack.contracts.v1 import DaemonRequest
        from jobtrack.daemon.server import handle_request

        resp, _ = handle_request(DaemonRequest.model_validate({"op": op, "args": args}))
        return resp

    def _create(self, user_id: str = "U1", **args) -> dict:
        resp = self._call("automation_create", {"user_id": user_id, **args})
        self.assertTrue(resp.ok, getattr(resp, "error", None))
        rule = (resp.result or {}).get("rule") or {}
        self.assertTrue(str(rule.get("id") or "").startswith("ar_"))
        return rule

    def _err_code(self, resp) -> str:
        err = resp.error.model_dump() if resp.error else {}
        return str(err.get("code") or "")

    def test_ping_and_unknown_op(self) -> None:
        _, cleanup = self._with_home()
        try:
            resp = self._call("ping", {})
            self.assertTrue(resp.ok)
            self.assertIn("version", resp.result or {})

            resp = self._call("bogus_op", {})
            self.assertFalse(resp.ok)
            self.assertEqual(self._err_code(resp), "unknown_op")
        finally:
            cleanup()

    def test_create_follow_up_requires_schedule(self) -> None:
        _, cleanup = self._with_home()
        try:
            resp = self._call("automation_create", {"user_id": "U1", "type": "follow_up", "config": {"job_id": "J1"}})
            self.assertFalse(resp.ok)
            self.assertEqual(self._err_code(resp), "automation_create_failed")
            self.assertIn("schedule is required", resp.error.message if resp.error else "")

            rule = self._create(
                type="follow_up",
                config={"job_id": "J1", "message": "Check in"},
                schedule="2025-03-08T09:00:00+02:00",
            )
            self.assertEqual(rule["schedule"], "2025-03-08T07:00:00Z")
            self.assertIsNone(rule["last_run_at"])
            self.assertTrue(rule["enabled"])
        finally:
            cleanup()

    def test_create_immediate_type_defaults_schedule_to_now(self) -> None:
        from jobtrack.kernel.rules import open_rule_store
        from jobtrack.util.time import utc_now

        td, cleanup = self._with_home()
        try:
            rule = self._create(type="checklist", config={"job_id": "J1", "items": ["Apply"]})
            self.assertEqual(rule["status"]["state"], "due")
            due = open_rule_store(Path(td)).list_due_rules(utc_now())
            self.assertEqual([r.id for r in due], [rule["id"]])
        finally:
            cleanup()

    def test_create_rejects_bad_input(self) -> None:
        _, cleanup = self._with_home()
        try:
            resp = self._call("automation_create", {"user_id": "U1", "type": "auto_archive", "config": {}})
            self.assertEqual(self._err_code(resp), "automation_create_failed")
            self.assertIn("unsupported rule type", resp.error.message if resp.error else "")

            resp = self._call(
                "automation_create",
                {"user_id": "U1", "type": "follow_up", "schedule": "next tuesday", "config": {"job_id": "J1"}},
            )
            self.assertEqual(self._err_code(resp), "automation_create_failed")

            resp = self._call("automation_create", {"user_id": "U1", "type": "checklist", "config": ["nope"]})
            self.assertEqual(self._err_code(resp), "invalid_request")

            resp = self._call("automation_create", {"type": "checklist", "config": {}})
            self.assertEqual(self._err_code(resp), "unauthorized")
        finally:
            cleanup()

    def test_list_and_get_are_scoped_to_owner(self) -> None:
        _, cleanup = self._with_home()
        try:
            mine = self._create("U1", type="checklist", config={"job_id": "J1", "items": ["a"]})
            theirs = self._create("U2", type="checklist", config={"job_id": "J9", "items": ["b"]})

            resp = self._call("automation_list", {"user_id": "U1"})
            self.assertTrue(resp.ok)
            result = resp.result or {}
            self.assertEqual([r["id"] for r in result.get("rules") or []], [mine["id"]])
            self.assertIn("template_response", result.get("rule_types") or [])
            self.assertIn("thank_you", result.get("templates") or [])
            self.assertEqual(
                result.get("job_statuses"),
                ["interested", "applied", "phone_screen", "interview", "offer", "rejected"],
            )
            self.assertEqual(
                result.get("rule_types"),
                ["application_package", "submission_schedule", "follow_up", "checklist", "template_response"],
            )
            self.assertTrue(str(result.get("server_now") or "").endswith("Z"))

            resp = self._call("automation_get", {"user_id": "U1", "rule_id": theirs["id"]})
            self.assertFalse(resp.ok)
            self.assertEqual(self._err_code(resp), "rule_not_found")

            resp = self._call("automation_get", {"user_id": "U2", "rule_id": theirs["id"]})
            self.assertTrue(resp.ok)
            self.assertEqual((resp.result or {}).get("rule", {}).get("config", {}).get("job_id"), "J9")
        finally:
            cleanup()

    def test_update_edits_fields_and_validates(self) -> None:
        _, cleanup = self._with_home()
        try:
            rule = self._create(type="follow_up", config={"job_id": "J1"}, schedule="2030-01-01T00:00:00Z")

            resp = self._call("automation_update", {"user_id": "U1", "rule_id": rule["id"], "enabled": "false"})
            self.assertTrue(resp.ok, getattr(resp, "error", None))
            updated = (resp.result or {}).get("rule") or {}
            self.assertFalse(updated["enabled"])
            self.assertEqual(updated["status"]["state"], "disabled")

            resp = self._call(
                "automation_update",
                {"user_id": "U1", "rule_id": rule["id"], "schedule": "2031-06-01T12:00:00Z", "enabled": True},
            )
            self.assertTrue(resp.ok)
            updated = (resp.result or {}).get("rule") or {}
            self.assertEqual(updated["schedule"], "2031-06-01T12:00:00Z")
            self.assertEqual(updated["status"]["state"], "scheduled")

            resp = self._call("automation_update", {"user_id": "U1", "rule_id": rule["id"], "schedule": "soon"})
            self.assertEqual(self._err_code(resp), "automation_update_failed")

            resp = self._call("automation_update", {"user_id": "U1", "rule_id": rule["id"], "type": "auto_archive"})
            self.assertEqual(self._err_code(resp), "automation_update_failed")

            resp = self._call("automation_update", {"user_id": "U2", "rule_id": rule["id"], "enabled": False})
            self.assertEqual(self._err_code(resp), "rule_not_found")
        finally:
            cleanup()

    def test_delete_removes_only_own_rule(self) -> None:
        _, cleanup = self._with_home()
        try:
            rule = self._create(type="checklist", config={"job_id": "J1", "items": ["a"]})

            resp = self._call("automation_delete", {"user_id": "U2", "rule_id": rule["id"]})
            self.assertEqual(self._err_code(resp), "rule_not_found")

            resp = self._call("automation_delete", {"user_id": "U1", "rule_id": rule["id"]})
            self.assertTrue(resp.ok)
            self.assertTrue((resp.result or {}).get("deleted"))

            resp = self._call("automation_get", {"user_id": "U1", "rule_id": rule["id"]})
            self.assertEqual(self._err_code(resp), "rule_not_found")
        finally:
            cleanup()

    def test_reset_rearms_a_completed_rule(self) -> None:
        from jobtrack.kernel.rules import open_rule_store
        from jobtrack.util.time import utc_now

        td, cleanup = self._with_home()
        try:
            rule = self._create(type="checklist", config={"job_id": "J1", "items": ["a"]})
            store = open_rule_store(Path(td))
            self.assertTrue(store.mark_rule_run(rule["id"], at=utc_now()))

            resp = self._call("automation_get", {"user_id": "U1", "rule_id": rule["id"]})
            self.assertEqual(((resp.result or {}).get("rule") or {})["status"]["state"], "completed")

            resp = self._call(
                "automation_reset",
                {"user_id": "U1", "rule_id": rule["id"], "schedule": "2030-01-01T00:00:00Z"},
            )
            self.assertTrue(resp.ok, getattr(resp, "error", None))
            reset = (resp.result or {}).get("rule") or {}
            self.assertIsNone(reset["last_run_at"])
            self.assertEqual(reset["schedule"], "2030-01-01T00:00:00Z")
            self.assertEqual(reset["failure_count"], 0)
            self.assertEqual(reset["status"]["state"], "scheduled")

            resp = self._call("automation_reset", {"user_id": "U1", "rule_id": "ar_missing"})
            self.assertEqual(self._err_code(resp), "rule_not_found")
        finally:
            cleanup()


if __name__ == "__main__":
    unittest.main()
