# =======================================================================================
# campus_gate/utils/timeutil.py - Time Helpers
# =======================================================================================
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from ..config import config

# All stored timestamps are naive UTC.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def planned_datetime(date_str: str, time_str: str) -> datetime:
    """
    Combine a form date ("2025-12-25") and time ("18:00"), entered in campus
    local time, into a naive UTC timestamp.
    """
    local = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
    local = local.replace(tzinfo=ZoneInfo(config.CAMPUS_TIMEZONE))
    return local.astimezone(timezone.utc).replace(tzinfo=None)
