"""
Timezone normalization helpers.

MinyanMap treats all timestamps as timezone-aware datetimes. Event dates arrive
from the remote API as ISO-8601 strings (usually UTC with a trailing `Z`), while
"today" for proximity checks is defined in the configured local timezone.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo


def ensure_tz(dt: datetime, timezone: str) -> datetime:
    """Ensure `dt` has tzinfo; attach `timezone` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(timezone))
    return dt


def now_in(timezone: str) -> datetime:
    """Return the current instant as an aware datetime in `timezone`."""
    return datetime.now(ZoneInfo(timezone))


def today_window(now: datetime, timezone: str) -> tuple[datetime, datetime]:
    """Return `(now, next local midnight)` for "later today" queries."""
    local = ensure_tz(now, timezone).astimezone(ZoneInfo(timezone))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    # Aware arithmetic with ZoneInfo is wall-clock, so DST days still end at local midnight.
    return local, midnight + timedelta(days=1)


def to_epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)
