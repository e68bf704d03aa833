from __future__ import annotations

from datetime import date, datetime, timezone
import unittest

from punchclock.db import Base, build_engine, build_session_factory
from punchclock.errors import RecordLookupError, ScanError
from punchclock.models import Entry, UserState
from punchclock.services.balance import get_delta_for_day, get_delta_for_month
from punchclock.services.clock import clock_in
from punchclock.services.user_states import provision_user_state

UTC = timezone.utc
UID = 11


def _ts(day: int, hour: int = 0, minute: int = 0) -> int:
    return int(datetime(2026, 10, day, hour, minute, tzinfo=UTC).timestamp())


class BalanceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.db = build_session_factory(self.engine)()
        provision_user_state(self.db, UID, now=_ts(1))

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _add_entry(self, start: int, end: int, *, valid: bool = True) -> None:
        self.db.add(Entry(uid=UID, from_unix_s=start, to_unix_s=end, valid=valid))
        self.db.commit()

    def test_invalid_entries_do_not_count(self) -> None:
        self._add_entry(_ts(16, 8), _ts(16, 12))
        self._add_entry(_ts(16, 13), _ts(16, 17), valid=False)

        result = get_delta_for_day(self.db, UID, date(2026, 10, 16), tz=UTC, now=_ts(16, 20))

        self.assertEqual(result.breakdown.worked_s, 4 * 3600)
        self.assertEqual(result.delta_s, 4 * 3600 - 28800)

    def test_open_session_is_counted_until_now(self) -> None:
        clock_in(self.db, UID, now=_ts(16, 9))

        result = get_delta_for_day(self.db, UID, date(2026, 10, 16), tz=UTC, now=_ts(16, 17))

        self.assertEqual(result.breakdown.open_session_s, 8 * 3600)
        self.assertEqual(result.delta_s, 0)
        self.assertEqual(result.computed_at_unix_s, _ts(16, 17))

    def test_entry_crossing_midnight_counts_for_neither_day(self) -> None:
        self._add_entry(_ts(15, 22), _ts(16, 2))

        thursday = get_delta_for_day(self.db, UID, date(2026, 10, 15), tz=UTC, now=_ts(16, 20))
        friday = get_delta_for_day(self.db, UID, date(2026, 10, 16), tz=UTC, now=_ts(16, 20))

        self.assertEqual(thursday.breakdown.worked_s, 0)
        self.assertEqual(friday.breakdown.worked_s, 0)

    def test_month_to_date_sums_the_whole_range(self) -> None:
        self._add_entry(_ts(1, 9), _ts(1, 17))
        self._add_entry(_ts(14, 9), _ts(14, 19))
        self._add_entry(_ts(20, 9), _ts(20, 17))

        result = get_delta_for_month(self.db, UID, date(2026, 10, 16), tz=UTC, now=_ts(16, 20))

        self.assertEqual(result.window.first_day, date(2026, 10, 1))
        self.assertEqual(result.window.last_day, date(2026, 10, 16))
        self.assertEqual(result.breakdown.worked_s, 18 * 3600)
        self.assertEqual(result.breakdown.expected_s, 12 * 28800)

    def test_payload_shape(self) -> None:
        payload = get_delta_for_day(self.db, UID, date(2026, 10, 17), tz=UTC, now=_ts(17, 12)).to_dict()

        self.assertEqual(payload["uid"], UID)
        self.assertEqual(payload["delta_s"], 0)
        self.assertEqual(payload["window_start"], _ts(17))
        self.assertEqual(payload["window_end"], _ts(18))

    def test_unknown_user_raises_lookup_error(self) -> None:
        with self.assertRaises(RecordLookupError) as exc:
            get_delta_for_day(self.db, 999, date(2026, 10, 16), tz=UTC, now=_ts(16, 20))

        self.assertEqual(exc.exception.step, "load_user_state")
        self.assertEqual(exc.exception.uid, 999)

    def test_unknown_state_value_is_a_scan_error(self) -> None:
        corrupt = UserState(uid=1, state="X", since_unix_s=0)

        with self.assertRaises(ScanError):
            corrupt.kind


if __name__ == "__main__":
    unittest.main()
