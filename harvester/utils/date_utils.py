import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from harvester.config import settings

# Campaign schedules on the target site are published in BRT.
BRT = timezone(timedelta(hours=-3))


def get_now() -> datetime:
    """
    Returns the current datetime in the configured timezone.
    """
    return datetime.now(ZoneInfo(settings.TIMEZONE))


def epoch_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)
