# recitescore/services/late_policy.py
from datetime import datetime
from zoneinfo import ZoneInfo

from recitescore.core.config import settings


def to_reference_zone(value: datetime, tz: ZoneInfo) -> datetime:
    """Naive datetimes are read as wall-clock time in the reference zone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def is_late_submission(
    submitted_at: datetime,
    due_at: datetime | None,
    tz_name: str | None = None,
) -> bool:
    """
    Compare the submission time with the due date in one fixed zone.

    Both sides go through the same conversion so a naive due date written
    as "23:59 local" is not shifted by the server's own zone.
    """
    if due_at is None:
        return False

    tz = ZoneInfo(tz_name or settings.REFERENCE_TIMEZONE)
    return to_reference_zone(submitted_at, tz) > to_reference_zone(due_at, tz)
