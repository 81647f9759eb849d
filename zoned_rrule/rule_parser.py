"""RFC 5545 rule text parsing.

Turns text such as::

    DTSTART;TZID=Europe/Berlin:20240530T200000
    RRULE:FREQ=WEEKLY;COUNT=3;BYDAY=WE
    EXDATE;TZID=Europe/Berlin:20240612T200000

into a ``ParsedRuleText`` holding constructor keywords. Zone resolution of
floating values is left to the caller, which knows the effective rule zone.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from .exceptions import RRuleParseError, ValidationError
from .models import WeekdayToken, weekday_index
from .timezone_utils import UTC_NAME, normalize_timezone_name, resolve_zone
from .zoned import normalize

logger = logging.getLogger(__name__)

DateValue = Union[date, datetime]

_FOLD_RE = re.compile(r"\r?\n[ \t]")
_INT_RE = re.compile(r"^[+-]?\d+$")

# RRULE keys taking comma-separated integer lists, mapped to keyword names
_INT_LIST_KEYS = {
    "BYSECOND": "by_second",
    "BYMINUTE": "by_minute",
    "BYHOUR": "by_hour",
    "BYMONTH": "by_month",
    "BYMONTHDAY": "by_month_day",
    "BYYEARDAY": "by_year_day",
    "BYWEEKNO": "by_week_no",
    "BYSETPOS": "by_set_pos",
}

# Accepted but not implemented (RFC 7529)
_IGNORED_KEYS = ("RSCALE", "SKIP")


@dataclass
class ParsedRuleText:
    """Result of parsing rule text.

    ``dtstart`` and ``until`` may be aware datetimes, naive (floating)
    datetimes or plain dates; ``r_date``/``ex_date`` entries likewise.
    """

    rule: dict[str, Any] = field(default_factory=dict)
    dtstart: Optional[DateValue] = None
    dtstart_tzid: Optional[str] = None
    until: Optional[DateValue] = None
    r_date: list[DateValue] = field(default_factory=list)
    ex_date: list[DateValue] = field(default_factory=list)

    @property
    def has_rule(self) -> bool:
        return "freq" in self.rule


def unfold_lines(text: str) -> list[str]:
    """Undo RFC 5545 line folding and drop blank lines."""
    unfolded = _FOLD_RE.sub("", text)
    return [line.strip() for line in unfolded.splitlines() if line.strip()]


def _split_property(line: str) -> tuple[str, dict[str, str], str]:
    """Split ``NAME;PARAM=V:VALUE`` into its parts.

    A line without a colon is taken as a bare RRULE value.
    """
    head, sep, value = line.rpartition(":")
    if not sep:
        return "RRULE", {}, line
    parts = head.split(";")
    params = {}
    for part in parts[1:]:
        if "=" in part:
            key, param_value = part.split("=", 1)
            params[key.strip().upper()] = param_value.strip().strip('"')
    return parts[0].strip().upper(), params, value.strip()


def _zone_from_tzid(tzid: str):
    try:
        return resolve_zone(tzid)
    except ValidationError as e:
        raise RRuleParseError(str(e)) from None


def parse_date_value(text: str, tzid: Optional[str] = None, value_type: Optional[str] = None) -> DateValue:
    """Parse one DATE or DATE-TIME value.

    Args:
        text: ``YYYYMMDD``, ``YYYYMMDDTHHMMSS`` or ``YYYYMMDDTHHMMSSZ``
        tzid: Zone for local values; None leaves them floating
        value_type: ``DATE`` or ``DATE-TIME`` from a VALUE parameter

    Returns:
        A date, an aware datetime (UTC or TZID), or a naive datetime

    Raises:
        RRuleParseError: If the value does not match a supported form
    """
    raw = text.strip().upper()
    try:
        if value_type == "DATE" or (len(raw) == 8 and raw.isdigit()):
            return datetime.strptime(raw, "%Y%m%d").date()
        if raw.endswith("Z"):
            return datetime.strptime(raw, "%Y%m%dT%H%M%SZ").replace(tzinfo=timezone.utc)
        parsed = datetime.strptime(raw, "%Y%m%dT%H%M%S")
    except ValueError:
        raise RRuleParseError(f"Invalid date-time value: {text!r}") from None
    if tzid:
        return normalize(parsed.replace(tzinfo=_zone_from_tzid(tzid)))
    return parsed


def _parse_int(key: str, value: str) -> int:
    if not _INT_RE.match(value.strip()):
        raise RRuleParseError(f"Invalid {key} value: {value!r}")
    return int(value)


def _parse_int_list(key: str, value: str) -> list[int]:
    parts = [part for part in value.split(",")]
    if not value.strip() or any(not part.strip() for part in parts):
        raise RRuleParseError(f"Invalid {key} value: {value!r}")
    return [_parse_int(key, part) for part in parts]


def _parse_by_day(value: str) -> list[str]:
    tokens = [token.strip().upper() for token in value.split(",")]
    if not value.strip():
        raise RRuleParseError("BYDAY must not be empty")
    for token in tokens:
        if WeekdayToken.parse(token) is None:
            raise RRuleParseError(f"Invalid BYDAY value: {token!r}")
    return tokens


def parse_rrule_value(value: str) -> dict[str, Any]:
    """Parse the ``FREQ=...;...`` part of an RRULE into keyword arguments.

    ``until`` is returned unresolved (see ``parse_date_value``).

    Raises:
        RRuleParseError: If FREQ is missing or a part is malformed
    """
    if not value or not value.strip():
        raise RRuleParseError("Empty RRULE string")

    rule: dict[str, Any] = {}
    for part in value.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise RRuleParseError(f"Invalid RRULE part: {part!r}")
        key, raw = part.split("=", 1)
        key = key.strip().upper()
        raw = raw.strip()

        if key == "FREQ":
            rule["freq"] = raw.upper()
        elif key == "INTERVAL":
            rule["interval"] = _parse_int(key, raw)
        elif key == "COUNT":
            rule["count"] = _parse_int(key, raw)
        elif key == "UNTIL":
            try:
                rule["until"] = parse_date_value(raw)
            except RRuleParseError:
                raise RRuleParseError(f"Invalid UNTIL value: {raw!r}") from None
        elif key == "BYDAY":
            rule["by_day"] = _parse_by_day(raw)
        elif key == "WKST":
            try:
                weekday_index(raw)
            except ValueError:
                raise RRuleParseError(f"Invalid WKST value: {raw!r}") from None
            rule["wkst"] = raw.upper()
        elif key in _INT_LIST_KEYS:
            rule[_INT_LIST_KEYS[key]] = _parse_int_list(key, raw)
        elif key in _IGNORED_KEYS:
            logger.warning("Ignoring unsupported RRULE part %s=%s", key, raw)
        else:
            logger.warning("Ignoring unknown RRULE part %s=%s", key, raw)

    if not rule.get("freq"):
        raise RRuleParseError("RRULE missing required FREQ parameter")
    return rule


def _parse_date_list(params: dict[str, str], value: str) -> list[DateValue]:
    tzid = params.get("TZID")
    value_type = params.get("VALUE", "").upper() or None
    return [parse_date_value(item, tzid, value_type) for item in value.split(",") if item.strip()]


def parse_rule_text(text: str) -> ParsedRuleText:
    """Parse DTSTART, RRULE, RDATE and EXDATE lines.

    Property names and RRULE keys are case-insensitive. A bare ``FREQ=...``
    line counts as the RRULE.

    Raises:
        RRuleParseError: On any malformed line or value
    """
    if not text or not text.strip():
        raise RRuleParseError("Empty rule text")

    parsed = ParsedRuleText()
    for line in unfold_lines(text):
        name, params, value = _split_property(line)

        if name == "DTSTART":
            tzid = params.get("TZID")
            value_type = params.get("VALUE", "").upper() or None
            dtstart = parse_date_value(value, tzid, value_type)
            if isinstance(dtstart, datetime) and dtstart.tzinfo is not None and not tzid:
                parsed.dtstart_tzid = UTC_NAME
            elif tzid:
                parsed.dtstart_tzid = normalize_timezone_name(tzid)
            parsed.dtstart = dtstart
        elif name == "RRULE":
            if parsed.has_rule:
                logger.warning("Ignoring additional RRULE line: %s", value)
                continue
            parsed.rule = parse_rrule_value(value)
        elif name == "RDATE":
            parsed.r_date.extend(_parse_date_list(params, value))
        elif name == "EXDATE":
            parsed.ex_date.extend(_parse_date_list(params, value))
        elif name == "EXRULE":
            logger.warning("Ignoring deprecated EXRULE line: %s", value)
        else:
            logger.warning("Ignoring unknown property %s", name)

    if not parsed.has_rule:
        raise RRuleParseError("RRULE missing required FREQ parameter")

    until = parsed.rule.pop("until", None)
    if (
        isinstance(until, datetime)
        and until.tzinfo is None
        and parsed.dtstart_tzid not in (None, UTC_NAME)
    ):
        raise RRuleParseError("UNTIL must be specified in UTC when DTSTART has a TZID")
    parsed.until = until

    logger.debug("Parsed rule text: %s", parsed.rule)
    return parsed
