"""Zoned calendar arithmetic used by the occurrence engine.

All values are aware ``datetime`` objects carrying a ``zoneinfo`` (or fixed
offset) tzinfo. Wall-clock fields that do not exist in the zone (spring-forward
gaps) resolve forward; ambiguous fields (fall-back folds) resolve to the
earlier instant unless ``fold=1`` was requested.

Instant comparison always goes through UTC: Python compares two datetimes that
share a tzinfo by wall clock and ignores ``fold``.
"""

import calendar
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional

UTC = timezone.utc

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
THURSDAY = 3


def instant(dt: datetime) -> datetime:
    """Return the absolute instant of ``dt`` as a UTC datetime."""
    return dt.astimezone(UTC)


def normalize(dt: datetime) -> datetime:
    """Resolve wall-clock fields to a real instant in the same zone."""
    return dt.astimezone(UTC).astimezone(dt.tzinfo)


def at(zone: tzinfo, day: date, hour: int = 0, minute: int = 0, second: int = 0, microsecond: int = 0) -> datetime:
    """Build the zoned datetime for a civil date and time of day."""
    return normalize(datetime(day.year, day.month, day.day, hour, minute, second, microsecond, tzinfo=zone))


def with_time(dt: datetime, hour: Optional[int] = None, minute: Optional[int] = None, second: Optional[int] = None) -> datetime:
    """Replace time-of-day fields on the wall clock, then normalize."""
    fields = {}
    if hour is not None:
        fields["hour"] = hour
    if minute is not None:
        fields["minute"] = minute
    if second is not None:
        fields["second"] = second
    return normalize(dt.replace(**fields))


def add_exact(dt: datetime, hours: int = 0, minutes: int = 0, seconds: int = 0) -> datetime:
    """Add elapsed time; the result may show a different wall-clock hour across DST."""
    moved = instant(dt) + timedelta(hours=hours, minutes=minutes, seconds=seconds)
    return moved.astimezone(dt.tzinfo)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def day_of_year(day: date) -> int:
    return day.timetuple().tm_yday


def safe_date(year: int, month: int, day: int) -> Optional[date]:
    """Return the date, or None when it does not exist (e.g. February 30)."""
    if not 1 <= month <= 12 or day < 1 or day > days_in_month(year, month):
        return None
    return date(year, month, day)


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    """Move a (year, month) pair by ``offset`` months."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def month_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def iso_weeks_in_year(iso_year: int) -> int:
    """Number of ISO weeks: 53 iff January 1 or December 31 falls on a Thursday."""
    if date(iso_year, 1, 1).weekday() == THURSDAY or date(iso_year, 12, 31).weekday() == THURSDAY:
        return 53
    return 52


def iso_week(day: date) -> tuple[int, int]:
    """Return (iso_year, week_number) for a civil date."""
    iso_year, week, _ = day.isocalendar()
    return iso_year, week


def week_start(day: date, wkst: int) -> date:
    """First day of the week containing ``day`` when weeks start on ``wkst``."""
    return day - timedelta(days=(day.weekday() - wkst) % 7)


def resolve_index(value: int, maximum: int) -> int:
    """Resolve a possibly negative 1-based index against ``maximum``."""
    return value if value > 0 else maximum + value + 1
