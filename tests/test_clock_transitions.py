from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from punchclock.db import Base, build_engine, build_session_factory
from punchclock.errors import RecordLookupError, TransactionError
from punchclock.models import Entry, UserState, UserStateKind
from punchclock.services.clock import clock_in, clock_out
from punchclock.services.user_states import provision_user_state

UID = 7


class ClockTransitionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.session_factory = build_session_factory(self.engine)
        self.db = self.session_factory()
        provision_user_state(self.db, UID, now=1_000)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _entries(self) -> list[Entry]:
        return list(self.db.scalars(select(Entry).where(Entry.uid == UID).order_by(Entry.eid)).all())

    def _state(self) -> UserState:
        self.db.expire_all()
        state = self.db.get(UserState, UID)
        assert state is not None
        return state

    def test_double_clock_in_keeps_first_session_and_writes_nothing(self) -> None:
        clock_in(self.db, UID, now=2_000)
        clock_in(self.db, UID, now=3_000)

        state = self._state()
        self.assertEqual(state.kind, UserStateKind.IN)
        self.assertEqual(state.since_unix_s, 2_000)
        self.assertEqual(self._entries(), [])
        rows = self.db.scalar(select(func.count()).select_from(UserState).where(UserState.uid == UID))
        self.assertEqual(rows, 1)

    def test_clock_in_then_out_materializes_one_valid_entry(self) -> None:
        clock_in(self.db, UID, now=2_000)
        clock_out(self.db, UID, now=2_600)

        entries = self._entries()
        self.assertEqual(len(entries), 1)
        self.assertEqual((entries[0].from_unix_s, entries[0].to_unix_s), (2_000, 2_600))
        self.assertTrue(entries[0].valid)

        state = self._state()
        self.assertEqual(state.kind, UserStateKind.OUT)
        self.assertEqual(state.since_unix_s, 2_600)

    def test_clock_out_when_already_out_is_noop(self) -> None:
        returned = clock_out(self.db, UID, now=5_000)

        self.assertEqual(returned.since_unix_s, 1_000)
        self.assertEqual(self._entries(), [])
        self.assertEqual(self._state().since_unix_s, 1_000)

    def test_zero_length_session_is_recorded(self) -> None:
        clock_in(self.db, UID, now=4_000)
        clock_out(self.db, UID, now=4_000)

        entries = self._entries()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].duration_s, 0)

    def test_clock_in_for_unprovisioned_user_fails_with_lookup_cause(self) -> None:
        with self.assertRaises(TransactionError) as exc:
            clock_in(self.db, 404, now=2_000)

        self.assertEqual(exc.exception.step, "lookup_user_state")
        self.assertEqual(exc.exception.uid, 404)
        self.assertIsInstance(exc.exception.__cause__, RecordLookupError)
        self.assertIsNone(self.db.get(UserState, 404))

    def test_clock_out_commit_failure_rolls_back_both_writes(self) -> None:
        clock_in(self.db, UID, now=2_000)

        failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))
        with patch.object(self.db, "commit", side_effect=failure):
            with self.assertRaises(TransactionError) as exc:
                clock_out(self.db, UID, now=2_900)

        self.assertEqual(exc.exception.step, "commit_clock_out")
        self.assertEqual(self._entries(), [])
        state = self._state()
        self.assertEqual(state.kind, UserStateKind.IN)
        self.assertEqual(state.since_unix_s, 2_000)

    def test_rollback_failure_is_logged_and_original_error_raised(self) -> None:
        commit_failure = OperationalError("COMMIT", {}, Exception("connection lost"))
        rollback_failure = OperationalError("ROLLBACK", {}, Exception("connection lost"))
        with (
            patch.object(self.db, "commit", side_effect=commit_failure),
            patch.object(self.db, "rollback", side_effect=rollback_failure),
            self.assertLogs("punchclock.clock", level="ERROR") as logs,
        ):
            with self.assertRaises(TransactionError) as exc:
                clock_in(self.db, UID, now=2_000)

        self.assertEqual(exc.exception.step, "commit_clock_in")
        self.assertIn("rollback_failed", logs.output[0])

    def test_second_session_observes_committed_clock_in(self) -> None:
        other = self.session_factory()
        try:
            clock_in(self.db, UID, now=2_000)
            since_seen_by_other = clock_in(other, UID, now=2_500).since_unix_s
        finally:
            other.close()

        self.assertEqual(since_seen_by_other, 2_000)
        self.assertEqual(self._state().since_unix_s, 2_000)
        self.assertEqual(self._entries(), [])

    def test_entry_end_matches_new_since(self) -> None:
        clock_in(self.db, UID, now=10_000)
        clock_out(self.db, UID)

        entry = self._entries()[0]
        self.assertEqual(entry.to_unix_s, self._state().since_unix_s)
        self.assertGreaterEqual(entry.to_unix_s, entry.from_unix_s)


if __name__ == "__main__":
    unittest.main()
