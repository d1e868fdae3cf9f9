"""Datetime utilities for timezone-aware UTC timestamps and tenant-local periods.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

Business periods (a sales day, a birthday-bonus year, a monthly counter) are
computed in the configured ``TIMEZONE`` and returned as UTC bounds so they can
be compared against stored timestamps.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from libs.common.config import get_settings


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def business_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().TIMEZONE)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def local_date(moment: Optional[datetime] = None) -> date:
    """Calendar date of ``moment`` in the business timezone."""
    moment = ensure_aware(moment or utc_now())
    return moment.astimezone(business_tz()).date()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar day."""
    tz = business_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def year_bounds(year: int) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar year."""
    tz = business_tz()
    start = datetime(year, 1, 1, tzinfo=tz)
    end = datetime(year + 1, 1, 1, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def month_start(moment: Optional[datetime] = None) -> datetime:
    """UTC instant at which the local month containing ``moment`` began."""
    local = ensure_aware(moment or utc_now()).astimezone(business_tz())
    start = datetime(local.year, local.month, 1, tzinfo=business_tz())
    return start.astimezone(timezone.utc)


def year_start(moment: Optional[datetime] = None) -> datetime:
    local = ensure_aware(moment or utc_now()).astimezone(business_tz())
    return year_bounds(local.year)[0]
