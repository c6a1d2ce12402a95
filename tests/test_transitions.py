import unittest
from datetime import datetime, timezone
from itertools import product

from src.opprime.catalog import Classification, PriorityCode, StatusCode, UrgencyLevel
from src.opprime.collaborators import FixedClock, InMemoryAuditLog, InMemoryIncidentStore
from src.opprime.session import IncidentRecord
from src.opprime.transitions import (
    TRANSITION_TABLE,
    StatusTransitionGuard,
    allowed_targets,
    can_transition,
)

NOW = datetime(2025, 7, 26, 14, 0, tzinfo=timezone.utc)


def _record(classification=Classification.MINOR, status=StatusCode.NEW, **extra) -> IncidentRecord:
    return IncidentRecord(
        record_id=None,
        tracking_number="INC-20250726-0001",
        classification=classification,
        title="VPN down",
        description="Remote staff cannot connect",
        urgency=UrgencyLevel.HIGH,
        application="VPN",
        location="Remote",
        time_issue_started=NOW,
        time_reported=NOW,
        priority=PriorityCode.P2,
        matrix_priority=PriorityCode.P2,
        created_at=NOW,
        status=status,
        **extra,
    )


class _ExplodingAudit:
    def append(self, entry):
        raise ConnectionError("audit sink unavailable")


class TestTransitionTable(unittest.TestCase):
    def test_table_edges(self):
        self.assertTrue(can_transition(StatusCode.NEW, StatusCode.OPEN))
        self.assertTrue(can_transition(StatusCode.CLOSED, StatusCode.IN_PROGRESS))
        self.assertFalse(can_transition(StatusCode.OPEN, StatusCode.CLOSED))
        self.assertFalse(can_transition(StatusCode.NEW, StatusCode.RESOLVED))
        self.assertEqual(allowed_targets(StatusCode.OPEN), [StatusCode.IN_PROGRESS, StatusCode.RESOLVED])


class TestStatusTransitionGuard(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryIncidentStore()
        self.audit = InMemoryAuditLog()
        self.clock = FixedClock(NOW)
        self.guard = StatusTransitionGuard(self.store, self.audit, self.clock)

    def _saved(self, **kwargs) -> IncidentRecord:
        record = _record(**kwargs)
        self.store.save(record)
        return record

    def test_transition_closure_over_every_pair(self):
        for from_status, to_status in product(StatusCode, StatusCode):
            with self.subTest(from_status=from_status, to_status=to_status):
                record = self._saved(status=from_status, resolution="Restarted the gateway")
                result = self.guard.transition(record, to_status, actor="analyst")
                legal = to_status in TRANSITION_TABLE[from_status]
                self.assertEqual(result.ok, legal)
                if legal:
                    self.assertEqual(record.status, to_status)
                    self.assertEqual(self.store.load(record.record_id).status, to_status)
                else:
                    self.assertIsNotNone(result.error)
                    self.assertEqual(record.status, from_status)
                    self.assertEqual(self.store.load(record.record_id).status, from_status)

    def test_open_to_closed_requires_resolved_path_and_resolution(self):
        record = self._saved(status=StatusCode.OPEN)
        direct = self.guard.transition(record, StatusCode.CLOSED, actor="analyst")
        self.assertFalse(direct.ok)
        self.assertEqual(direct.error.code, "illegal_transition")

        self.assertTrue(self.guard.transition(record, StatusCode.RESOLVED, actor="analyst").ok)
        no_resolution = self.guard.transition(record, StatusCode.CLOSED, actor="analyst")
        self.assertFalse(no_resolution.ok)
        self.assertEqual(no_resolution.error.code, "resolution_required")
        self.assertEqual(record.status, StatusCode.RESOLVED)

        record.resolution = "Certificate renewed"
        self.store.save(record)
        closed = self.guard.transition(record, StatusCode.CLOSED, actor="analyst", reason="confirmed by user")
        self.assertTrue(closed.ok)
        self.assertEqual(record.closed_at, NOW)
        self.assertEqual(closed.audit_entry.reason, "confirmed by user")

    def test_major_close_requires_notice(self):
        record = self._saved(
            classification=Classification.MAJOR, status=StatusCode.RESOLVED, resolution="Failover completed"
        )
        result = self.guard.transition(record, StatusCode.CLOSED, actor="commander")
        self.assertFalse(result.ok)
        self.assertEqual(result.error.code, "notice_required")

        record.notice_sent = True
        self.store.save(record)
        self.assertTrue(self.guard.transition(record, StatusCode.CLOSED, actor="commander").ok)

    def test_successful_transition_emits_single_audit_entry(self):
        record = self._saved()
        result = self.guard.transition(record, StatusCode.OPEN, actor="analyst")
        entries = self.audit.entries_for(record.record_id)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0], result.audit_entry)
        self.assertEqual((entries[0].from_status, entries[0].to_status), (StatusCode.NEW, StatusCode.OPEN))
        self.assertEqual(entries[0].actor, "analyst")
        self.assertEqual(entries[0].timestamp, NOW)

    def test_rejection_emits_no_audit_entry(self):
        record = self._saved()
        self.guard.transition(record, StatusCode.CLOSED, actor="analyst")
        self.assertEqual(self.audit.entries, [])

    def test_reopen_clears_closed_timestamp(self):
        record = self._saved(status=StatusCode.RESOLVED, resolution="done")
        self.guard.transition(record, StatusCode.CLOSED, actor="a")
        self.clock.advance(hours=2)
        self.guard.transition(record, StatusCode.IN_PROGRESS, actor="a", reason="issue recurred")
        self.assertIsNone(record.closed_at)
        self.assertEqual(record.status, StatusCode.IN_PROGRESS)

    def test_unsaved_record_rejected(self):
        record = _record()
        result = self.guard.transition(record, StatusCode.OPEN, actor="a")
        self.assertEqual(result.error.code, "record_not_found")
        self.assertIsNone(result.error.from_status)
        self.assertEqual(self.audit.entries, [])

    def test_stale_copy_does_not_overwrite_stored_fields(self):
        record = self._saved(status=StatusCode.RESOLVED)
        fresh = self.store.load(record.record_id)
        fresh.resolution = "Replaced the faulty switch"
        self.store.save(fresh)

        result = self.guard.transition(record, StatusCode.CLOSED, actor="analyst")
        self.assertTrue(result.ok)
        stored = self.store.load(record.record_id)
        self.assertEqual(stored.status, StatusCode.CLOSED)
        self.assertEqual(stored.resolution, "Replaced the faulty switch")
        self.assertEqual(stored.closed_at, NOW)
        self.assertEqual(record.status, StatusCode.CLOSED)

    def test_preconditions_use_stored_record(self):
        record = self._saved(status=StatusCode.RESOLVED)
        record.resolution = "only in memory"
        result = self.guard.transition(record, StatusCode.CLOSED, actor="analyst")
        self.assertFalse(result.ok)
        self.assertEqual(result.error.code, "resolution_required")

    def test_audit_failure_propagates_and_rolls_back(self):
        guard = StatusTransitionGuard(self.store, _ExplodingAudit(), self.clock)
        record = self._saved()
        with self.assertRaises(ConnectionError):
            guard.transition(record, StatusCode.OPEN, actor="a")
        self.assertEqual(record.status, StatusCode.NEW)
        self.assertEqual(self.store.load(record.record_id).status, StatusCode.NEW)


if __name__ == "__main__":
    unittest.main()
