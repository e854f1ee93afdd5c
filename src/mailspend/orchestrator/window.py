"""Processing window and schedule arithmetic for the daily batch."""
from datetime import datetime, timedelta
from typing import Tuple


def compute_daily_window(now: datetime) -> Tuple[datetime, datetime]:
    """[yesterday 00:00, today 00:00) on the clock of ``now``'s time zone."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    return yesterday, today


def next_run_at(now: datetime, hour: int, minute: int) -> datetime:
    """Next wall-clock occurrence of hour:minute strictly after ``now``."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate
