"""Render a RecurrenceRule back to RFC 5545 text."""

from datetime import datetime

from .models import RecurrenceRule
from .timezone_utils import UTC_NAME
from .zoned import WEEKDAY_CODES, instant

_UTC_FORMAT = "%Y%m%dT%H%M%SZ"
_LOCAL_FORMAT = "%Y%m%dT%H%M%S"

# BY* parts in output order, after FREQ/INTERVAL/COUNT/UNTIL
_LIST_PARTS = (
    ("BYMONTH", "by_month"),
    ("BYWEEKNO", "by_week_no"),
    ("BYYEARDAY", "by_year_day"),
    ("BYMONTHDAY", "by_month_day"),
    ("BYDAY", "by_day"),
    ("BYHOUR", "by_hour"),
    ("BYMINUTE", "by_minute"),
    ("BYSECOND", "by_second"),
    ("BYSETPOS", "by_set_pos"),
)


def format_utc(dt: datetime) -> str:
    return instant(dt).strftime(_UTC_FORMAT)


def format_dtstart(rule: RecurrenceRule) -> str:
    """``DTSTART:...Z`` for UTC rules, ``DTSTART;TZID=Zone:...`` otherwise."""
    if rule.tzid == UTC_NAME:
        return f"DTSTART:{format_utc(rule.dtstart)}"
    local = rule.dtstart.astimezone(rule.zone)
    return f"DTSTART;TZID={rule.tzid}:{local.strftime(_LOCAL_FORMAT)}"


def format_rrule(rule: RecurrenceRule) -> str:
    """The ``RRULE:`` line, keys in canonical order."""
    parts = [f"FREQ={rule.frequency.value}"]
    if rule.interval != 1:
        parts.append(f"INTERVAL={rule.interval}")
    if rule.count is not None:
        parts.append(f"COUNT={rule.count}")
    if rule.until is not None:
        parts.append(f"UNTIL={format_utc(rule.until)}")
    for key, attr in _LIST_PARTS:
        values = getattr(rule, attr)
        if values:
            parts.append(f"{key}={','.join(str(value) for value in values)}")
    if rule.week_start != 0:
        parts.append(f"WKST={WEEKDAY_CODES[rule.week_start]}")
    return "RRULE:" + ";".join(parts)


def format_rule(rule: RecurrenceRule) -> str:
    """Full text: DTSTART, RRULE, then RDATE/EXDATE lines in UTC.

    Parsing the result reproduces the same occurrences.
    """
    lines = [format_dtstart(rule), format_rrule(rule)]
    if rule.r_date:
        lines.append("RDATE:" + ",".join(format_utc(value) for value in sorted(rule.r_date, key=instant)))
    if rule.ex_date:
        lines.append("EXDATE:" + ",".join(format_utc(value) for value in sorted(rule.ex_date, key=instant)))
    return "\n".join(lines)
