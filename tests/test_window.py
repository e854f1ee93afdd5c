"""Tests for window and schedule arithmetic."""
import unittest
from datetime import datetime
from zoneinfo import ZoneInfo

from mailspend.orchestrator.window import compute_daily_window, next_run_at

LIMA = ZoneInfo("America/Lima")
SANTIAGO = ZoneInfo("America/Santiago")


class TestComputeDailyWindow(unittest.TestCase):

    def test_previous_local_day(self):
        start, end = compute_daily_window(datetime(2025, 3, 15, 0, 5, tzinfo=LIMA))

        self.assertEqual(start, datetime(2025, 3, 14, tzinfo=LIMA))
        self.assertEqual(end, datetime(2025, 3, 15, tzinfo=LIMA))

    def test_late_trigger_still_covers_previous_day(self):
        start, end = compute_daily_window(datetime(2025, 3, 15, 23, 59, tzinfo=LIMA))

        self.assertEqual(start.date().isoformat(), "2025-03-14")
        self.assertEqual(end.date().isoformat(), "2025-03-15")

    def test_month_boundary(self):
        start, _ = compute_daily_window(datetime(2025, 3, 1, 0, 5, tzinfo=LIMA))
        self.assertEqual(start, datetime(2025, 2, 28, tzinfo=LIMA))

    def test_window_is_wall_clock_midnights(self):
        # Chile leaves daylight saving on 2025-04-06
        start, end = compute_daily_window(datetime(2025, 4, 6, 0, 30, tzinfo=SANTIAGO))

        self.assertEqual((start.hour, end.hour), (0, 0))
        self.assertLess(start, end)


class TestNextRunAt(unittest.TestCase):

    def test_later_today(self):
        now = datetime(2025, 3, 14, 22, 0, tzinfo=LIMA)
        self.assertEqual(next_run_at(now, 23, 30), datetime(2025, 3, 14, 23, 30, tzinfo=LIMA))

    def test_rolls_to_tomorrow(self):
        now = datetime(2025, 3, 14, 0, 0, tzinfo=LIMA)
        self.assertEqual(next_run_at(now, 0, 0), datetime(2025, 3, 15, 0, 0, tzinfo=LIMA))


if __name__ == "__main__":
    unittest.main()
