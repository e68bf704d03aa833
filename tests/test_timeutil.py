from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest.mock import patch
from zoneinfo import ZoneInfo

from punchclock.timeutil import attendance_timezone, parse_timezone


class AttendanceTimezoneTests(unittest.TestCase):
    def setUp(self) -> None:
        attendance_timezone.cache_clear()
        self.addCleanup(attendance_timezone.cache_clear)

    def test_configured_zone_is_used(self) -> None:
        settings = SimpleNamespace(attendance_timezone="America/New_York")
        with patch("punchclock.timeutil.get_settings", return_value=settings):
            self.assertEqual(attendance_timezone(), ZoneInfo("America/New_York"))

    def test_misconfigured_zone_falls_back_with_warning(self) -> None:
        settings = SimpleNamespace(attendance_timezone="Europe/Atlantis")
        with (
            patch("punchclock.timeutil.get_settings", return_value=settings),
            self.assertLogs("punchclock.time", level="WARNING") as logs,
        ):
            zone = attendance_timezone()

        self.assertEqual(zone, ZoneInfo("Europe/Berlin"))
        self.assertIn("attendance_timezone_invalid", logs.output[0])

    def test_parse_timezone_rejects_unknown_names(self) -> None:
        with self.assertRaises(ValueError):
            parse_timezone("Mars/Olympus")


if __name__ == "__main__":
    unittest.main()
