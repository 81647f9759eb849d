"""BY* constraint predicates.

Each predicate answers whether one candidate satisfies one filter; an unset
filter always matches. Date-level predicates accept a ``date`` or a
``datetime`` (only the civil date is consulted).
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from .models import Frequency, RecurrenceRule, WeekdayToken
from .zoned import (
    day_of_year,
    days_in_month,
    days_in_year,
    instant,
    iso_week,
    iso_weeks_in_year,
    normalize,
    resolve_index,
)

# First failing filter wins when choosing where to jump next
DATE_FILTER_PRIORITY = ("by_month", "by_year_day", "by_week_no", "by_month_day", "by_day")


def weekday_dates_in_month(year: int, month: int, weekday: int) -> list[date]:
    """All dates of ``weekday`` within a month, ascending."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return [date(year, month, day) for day in range(1 + offset, days_in_month(year, month) + 1, 7)]


def weekday_dates_in_year(year: int, weekday: int) -> list[date]:
    """All dates of ``weekday`` within a calendar year, ascending."""
    first = date(year, 1, 1)
    current = first + timedelta(days=(weekday - first.weekday()) % 7)
    dates = []
    while current.year == year:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def pick_ordinal(candidates: list[date], ordinal: int) -> Optional[date]:
    """Return the Nth entry (negative counts from the end), or None if out of range."""
    index = ordinal - 1 if ordinal > 0 else len(candidates) + ordinal
    if 0 <= index < len(candidates):
        return candidates[index]
    return None


def token_matches_in_month(day: date, token: WeekdayToken) -> bool:
    if day.weekday() != token.weekday:
        return False
    if token.ordinal is None:
        return True
    target = pick_ordinal(weekday_dates_in_month(day.year, day.month, token.weekday), token.ordinal)
    return target is not None and target == _as_date(day)


def token_matches_in_year(day: date, token: WeekdayToken) -> bool:
    if day.weekday() != token.weekday:
        return False
    if token.ordinal is None:
        return True
    target = pick_ordinal(weekday_dates_in_year(day.year, token.weekday), token.ordinal)
    return target is not None and target == _as_date(day)


def _as_date(day: date) -> date:
    return day.date() if isinstance(day, datetime) else day


def matches_by_month(day: date, rule: RecurrenceRule) -> bool:
    return not rule.by_month or day.month in rule.by_month


def matches_by_month_day(day: date, rule: RecurrenceRule) -> bool:
    if not rule.by_month_day:
        return True
    last = days_in_month(day.year, day.month)
    return any(resolve_index(value, last) == day.day for value in rule.by_month_day)


def matches_by_year_day(day: date, rule: RecurrenceRule) -> bool:
    if not rule.by_year_day:
        return True
    last = days_in_year(day.year)
    ordinal = day_of_year(day)
    return any(resolve_index(value, last) == ordinal for value in rule.by_year_day)


def matches_by_week_no(day: date, rule: RecurrenceRule) -> bool:
    if not rule.by_week_no:
        return True
    week_year, week = iso_week(_as_date(day))
    last = iso_weeks_in_year(week_year)
    return any(resolve_index(value, last) == week for value in rule.by_week_no)


def matches_by_day(day: date, rule: RecurrenceRule) -> bool:
    """Weekday filter; ordinals count within the candidate's month.

    Under DAILY only the weekday is compared.
    """
    if not rule.by_day:
        return True
    if rule.frequency == Frequency.DAILY:
        return any(day.weekday() == token.weekday for token in rule.by_day)
    return any(token_matches_in_month(day, token) for token in rule.by_day)


def matches_by_hour(candidate: datetime, rule: RecurrenceRule) -> bool:
    """Hour filter, tolerant of hours swallowed by a spring-forward gap."""
    if not rule.by_hour:
        return True
    if candidate.hour in rule.by_hour:
        return True
    moment = instant(candidate)
    return any(instant(normalize(candidate.replace(hour=hour, fold=0))) == moment for hour in rule.by_hour)


def matches_by_minute(candidate: datetime, rule: RecurrenceRule) -> bool:
    return not rule.by_minute or candidate.minute in rule.by_minute


def matches_by_second(candidate: datetime, rule: RecurrenceRule) -> bool:
    return not rule.by_second or candidate.second in rule.by_second


DATE_PREDICATES: dict[str, Callable[[date, RecurrenceRule], bool]] = {
    "by_month": matches_by_month,
    "by_year_day": matches_by_year_day,
    "by_week_no": matches_by_week_no,
    "by_month_day": matches_by_month_day,
    "by_day": matches_by_day,
}


def first_failing_date_filter(day: date, rule: RecurrenceRule) -> Optional[str]:
    """Name of the first date-level filter ``day`` fails, in jump priority order."""
    for name in DATE_FILTER_PRIORITY:
        if not DATE_PREDICATES[name](day, rule):
            return name
    return None


def matches_date(day: date, rule: RecurrenceRule) -> bool:
    return first_failing_date_filter(day, rule) is None


def matches_time(candidate: datetime, rule: RecurrenceRule) -> bool:
    return (
        matches_by_hour(candidate, rule)
        and matches_by_minute(candidate, rule)
        and matches_by_second(candidate, rule)
    )


def matches_all(candidate: datetime, rule: RecurrenceRule) -> bool:
    """Conjunction of every BY* predicate."""
    return matches_date(candidate, rule) and matches_time(candidate, rule)
