"""Rule model and sanitizer for zoned_rrule.

``RecurrenceRule`` is the immutable, validated form of a recurrence rule.
``build_recurrence_rule`` turns loosely typed constructor input into one,
resolving the rule time zone and converting every timestamp into it.
"""

import logging
import re
from collections.abc import Iterable
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .timezone_utils import normalize_timezone_name, resolve_zone, zone_name_of
from .zoned import WEEKDAY_CODES

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10000

_TOKEN_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")


class Frequency(str, Enum):
    """RFC 5545 FREQ values, coarsest first."""

    YEARLY = "YEARLY"
    MONTHLY = "MONTHLY"
    WEEKLY = "WEEKLY"
    DAILY = "DAILY"
    HOURLY = "HOURLY"
    MINUTELY = "MINUTELY"
    SECONDLY = "SECONDLY"

    @property
    def rank(self) -> int:
        return _FREQUENCY_ORDER.index(self)

    @property
    def is_sub_daily(self) -> bool:
        return self in (Frequency.HOURLY, Frequency.MINUTELY, Frequency.SECONDLY)


_FREQUENCY_ORDER = list(Frequency)


def weekday_index(code: str) -> int:
    """Return the Python weekday index (MO=0) for a two-letter code.

    Raises:
        ValueError: If the code is not a weekday
    """
    try:
        return WEEKDAY_CODES.index(code.strip().upper())
    except ValueError:
        raise ValueError(f"Unknown weekday code: {code!r}") from None


class WeekdayToken(BaseModel):
    """One BYDAY entry: a weekday, optionally constrained to its Nth occurrence."""

    model_config = ConfigDict(frozen=True)

    weekday: int = Field(..., ge=0, le=6, description="Weekday index, Monday is 0")
    ordinal: Optional[int] = Field(default=None, description="1-based position, negative counts from the end")

    @classmethod
    def parse(cls, token: Any) -> Optional["WeekdayToken"]:
        """Parse "MO", "2FR" or "-1SU"; returns None for anything invalid."""
        if isinstance(token, WeekdayToken):
            return token
        if not isinstance(token, str):
            return None
        match = _TOKEN_RE.match(token.strip().upper())
        if not match:
            return None
        ordinal_text, code = match.groups()
        ordinal = int(ordinal_text) if ordinal_text else None
        if ordinal is not None and (ordinal == 0 or abs(ordinal) > 53):
            return None
        return cls(weekday=WEEKDAY_CODES.index(code), ordinal=ordinal)

    @property
    def code(self) -> str:
        return WEEKDAY_CODES[self.weekday]

    def __str__(self) -> str:
        return f"{self.ordinal}{self.code}" if self.ordinal is not None else self.code


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in value.split(",") if part.strip()]
    if isinstance(value, (int, WeekdayToken)):
        return [value]
    return list(value)


def _int_filter(value: Any, low: int, high: int, allow_zero: bool = True) -> tuple[int, ...]:
    """Coerce to ints and keep entries within [low, high], sorted and unique."""
    kept = set()
    for raw in _as_list(value):
        try:
            number = int(raw)
        except (TypeError, ValueError):
            logger.debug("Dropping non-integer BY* value %r", raw)
            continue
        if low <= number <= high and (allow_zero or number != 0):
            kept.add(number)
        else:
            logger.debug("Dropping out-of-range BY* value %d", number)
    return tuple(sorted(kept))


class RecurrenceRule(BaseModel):
    """Validated, immutable recurrence rule.

    All timestamps are aware datetimes expressed in the zone named by ``tzid``,
    except ``r_date`` entries which are kept verbatim.
    """

    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    dtstart: datetime
    tzid: str = "UTC"
    interval: int = 1
    count: Optional[int] = None
    until: Optional[datetime] = None
    by_hour: tuple[int, ...] = ()
    by_minute: tuple[int, ...] = ()
    by_second: tuple[int, ...] = ()
    by_day: tuple[WeekdayToken, ...] = ()
    by_month: tuple[int, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_year_day: tuple[int, ...] = ()
    by_week_no: tuple[int, ...] = ()
    by_set_pos: tuple[int, ...] = ()
    week_start: int = Field(default=0, ge=0, le=6)
    r_date: tuple[datetime, ...] = ()
    ex_date: tuple[datetime, ...] = ()
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    include_dtstart: bool = False

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Cannot create RRule: interval must be greater than 0")
        return v

    @field_validator("count")
    @classmethod
    def validate_count(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("Cannot create RRule: count must not be negative")
        return v

    @field_validator("by_hour", mode="before")
    @classmethod
    def filter_hours(cls, v: Any) -> tuple[int, ...]:
        return _int_filter(v, 0, 23)

    @field_validator("by_minute", "by_second", mode="before")
    @classmethod
    def filter_minutes_seconds(cls, v: Any) -> tuple[int, ...]:
        return _int_filter(v, 0, 59)

    @field_validator("by_month", mode="before")
    @classmethod
    def filter_months(cls, v: Any) -> tuple[int, ...]:
        return _int_filter(v, 1, 12)

    @field_validator("by_month_day", mode="before")
    @classmethod
    def filter_month_days(cls, v: Any) -> tuple[int, ...]:
        return _int_filter(v, -31, 31, allow_zero=False)

    @field_validator("by_year_day", mode="before")
    @classmethod
    def filter_year_days(cls, v: Any) -> tuple[int, ...]:
        return _int_filter(v, -366, 366, allow_zero=False)

    @field_validator("by_week_no", mode="before")
    @classmethod
    def filter_week_numbers(cls, v: Any) -> tuple[int, ...]:
        return _int_filter(v, -53, 53, allow_zero=False)

    @field_validator("by_set_pos", mode="before")
    @classmethod
    def validate_set_pos(cls, v: Any) -> tuple[int, ...]:
        positions = []
        for raw in _as_list(v):
            position = int(raw)
            if position == 0:
                raise ValueError("bySetPos may not contain 0")
            if position not in positions:
                positions.append(position)
        return tuple(positions)

    @field_validator("by_day", mode="before")
    @classmethod
    def parse_weekday_tokens(cls, v: Any) -> tuple[WeekdayToken, ...]:
        tokens = []
        for raw in _as_list(v):
            token = WeekdayToken.parse(raw)
            if token is None:
                logger.debug("Dropping invalid BYDAY token %r", raw)
                continue
            if token not in tokens:
                tokens.append(token)
        return tuple(tokens)

    @field_validator("dtstart", "until")
    @classmethod
    def require_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.utcoffset() is None:
            raise ValueError("datetime must be timezone-aware")
        return v

    @property
    def zone(self):
        """tzinfo for ``tzid``."""
        return resolve_zone(self.tzid)

    @property
    def is_bounded(self) -> bool:
        return self.count is not None or self.until is not None

    def day_filters_set(self) -> bool:
        """True when any date-level BY* filter is present."""
        return bool(self.by_month or self.by_week_no or self.by_year_day or self.by_month_day or self.by_day)


def _require_aware(value: Any, label: str) -> datetime:
    if not isinstance(value, datetime) or value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"Manual {label} must be a timezone-aware datetime")
    return value


def _localize_all(values: Optional[Iterable[Any]], zone, label: str) -> tuple[datetime, ...]:
    """Attach the rule zone to naive entries; aware entries are kept verbatim."""
    result = []
    for value in values or ():
        if isinstance(value, datetime):
            result.append(value if value.utcoffset() is not None else value.replace(tzinfo=zone))
        elif isinstance(value, date):
            result.append(datetime(value.year, value.month, value.day, tzinfo=zone))
        else:
            raise ValidationError(f"{label} entries must be datetimes, got {type(value).__name__}")
    return tuple(result)


def _pydantic_messages(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        message = str(error.get("msg", ""))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(message if message.startswith("Cannot create") else f"{location}: {message}")
    return "; ".join(messages)


def build_recurrence_rule(
    freq: Any,
    dtstart: Any,
    *,
    tzid: Optional[str] = None,
    interval: Any = 1,
    count: Optional[int] = None,
    until: Any = None,
    by_hour: Any = None,
    by_minute: Any = None,
    by_second: Any = None,
    by_day: Any = None,
    by_month: Any = None,
    by_month_day: Any = None,
    by_year_day: Any = None,
    by_week_no: Any = None,
    by_set_pos: Any = None,
    wkst: Any = "MO",
    r_date: Optional[Iterable[Any]] = None,
    ex_date: Optional[Iterable[Any]] = None,
    max_iterations: Optional[int] = None,
    include_dtstart: bool = False,
    default_tzid: str = "UTC",
) -> RecurrenceRule:
    """Validate constructor input and build a RecurrenceRule.

    Time zone precedence: explicit ``tzid``, then the zone carried by
    ``dtstart``, then ``default_tzid``. Callers parsing rule text pass the
    DTSTART TZID as ``tzid`` when no explicit zone was requested.

    Raises:
        ValidationError: If any field is invalid
    """
    if freq is None or (isinstance(freq, str) and not freq.strip()):
        raise ValidationError("Cannot create RRule: freq is required")
    try:
        frequency = Frequency(freq.strip().upper() if isinstance(freq, str) else freq)
    except ValueError:
        raise ValidationError(f"Unsupported frequency: {freq!r}") from None

    dtstart = _require_aware(dtstart, "dtstart")
    if until is not None:
        until = _require_aware(until, "until")

    requested = tzid or zone_name_of(dtstart) or default_tzid
    zone = resolve_zone(requested)
    zone_name = normalize_timezone_name(requested) or requested

    if isinstance(wkst, int):
        week_start = wkst
    else:
        try:
            week_start = weekday_index(str(wkst or "MO"))
        except ValueError as e:
            raise ValidationError(str(e)) from None

    fields: dict[str, Any] = {
        "frequency": frequency,
        "dtstart": dtstart.astimezone(zone),
        "tzid": zone_name,
        "interval": interval if interval is not None else 1,
        "count": count,
        "until": until.astimezone(zone) if until is not None else None,
        "by_hour": by_hour,
        "by_minute": by_minute,
        "by_second": by_second,
        "by_day": by_day,
        "by_month": by_month,
        "by_month_day": by_month_day,
        "by_year_day": by_year_day,
        "by_week_no": by_week_no,
        "by_set_pos": by_set_pos,
        "week_start": week_start,
        "r_date": _localize_all(r_date, zone, "rDate"),
        "ex_date": _localize_all(ex_date, zone, "exDate"),
        "include_dtstart": bool(include_dtstart),
    }
    if max_iterations is not None:
        fields["max_iterations"] = max_iterations

    try:
        rule = RecurrenceRule(**fields)
    except PydanticValidationError as exc:
        raise ValidationError(_pydantic_messages(exc)) from exc

    logger.debug("Built %s rule anchored at %s in %s", rule.frequency.value, rule.dtstart.isoformat(), rule.tzid)
    return rule
