import unittest
from datetime import datetime, timezone

from src.opprime.catalog import Classification, ImpactLevel, IncidentSource, UrgencyLevel
from src.opprime.session import IntakeSession


class TestApplyFields(unittest.TestCase):
    def test_coerces_caller_values(self):
        session = IntakeSession(session_id="s1")
        accepted, ignored = session.apply_fields(
            {
                "urgency": 2,
                "impacted-users": "50~",
                "impact level": "High",
                "title": "  Payroll down  ",
                "tags": "Security; VIP",
                "generating_multiple_calls": "yes",
                "incident_source": IncidentSource.SERVICE_DESK.value,
                "status": "closed",
                "priority": "P1",
            }
        )
        self.assertEqual(session.urgency, UrgencyLevel.MEDIUM)
        self.assertEqual(session.impacted_users, 50)
        self.assertEqual(session.impact_level, ImpactLevel.HIGH)
        self.assertEqual(session.title, "Payroll down")
        self.assertEqual(session.tags, {"security", "vip"})
        self.assertTrue(session.generating_multiple_calls)
        self.assertEqual(ignored, ["status", "priority"])
        self.assertNotIn("incident_source", accepted)

    def test_classification_is_not_editable_directly(self):
        session = IntakeSession(classification=Classification.MAJOR, current_step=4, business_impact="Trading halted")
        accepted, ignored = session.apply_fields({"classification": "minor"})
        self.assertEqual((accepted, ignored), ([], ["classification"]))
        self.assertEqual(session.classification, Classification.MAJOR)
        self.assertEqual(session.current_step, 4)
        self.assertEqual(session.business_impact, "Trading halted")

    def test_timestamps_are_parsed_or_kept_for_validation(self):
        session = IntakeSession()
        session.apply_fields({"time_issue_started": "2025-07-26T09:00:00+00:00", "time_reported": "soon"})
        self.assertEqual(session.time_issue_started, datetime(2025, 7, 26, 9, 0, tzinfo=timezone.utc))
        self.assertEqual(session.time_reported, "soon")
        session.apply_fields({"time_reported": "  "})
        self.assertIsNone(session.time_reported)

    def test_unknown_enum_values_are_kept_for_validation(self):
        session = IntakeSession()
        session.apply_fields({"urgency": "whenever", "impacted_users": "lots"})
        self.assertEqual(session.urgency, "whenever")
        self.assertEqual(session.impacted_users, "lots")

    def test_changes_are_traced_and_noop_edits_are_not(self):
        session = IntakeSession()
        started = datetime(2025, 7, 26, 9, 0, tzinfo=timezone.utc)
        session.apply_fields({"time_issue_started": started, "tags": ["b", "a"]})
        session.apply_fields({"tags": ["a", "b"]})
        self.assertEqual(session.variables_used, ["time_issue_started", "tags"])
        self.assertEqual(session.value_updates[0]["new_value"], started.isoformat())
        self.assertEqual(session.value_updates[1]["new_value"], ["a", "b"])
        self.assertEqual(session.value_updates[1]["reason"], "field_update")

    def test_snapshot_is_independent(self):
        session = IntakeSession(tags={"vip"})
        copy = session.snapshot()
        copy.tags.add("security")
        copy.title = "changed"
        self.assertEqual(session.tags, {"vip"})
        self.assertEqual(session.title, "")


if __name__ == "__main__":
    unittest.main()
