"""Public traversal API.

``RRule`` wraps a validated ``RecurrenceRule`` and answers the four queries
callers need: every occurrence, the occurrences in a window, and the
nearest occurrence after or before an instant.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any, Optional

from .config import get_config
from .exceptions import UnboundedQueryError, ValidationError
from .generators import StepBudget, iter_occurrences
from .models import RecurrenceRule, build_recurrence_rule
from .reconciler import is_excluded, raw_count_bound, reconcile
from .rule_parser import parse_rule_text
from .rule_serializer import format_rrule, format_rule
from .timezone_utils import now_utc, resolve_zone, zone_name_of
from .zoned import at, instant, normalize

logger = logging.getLogger(__name__)

IteratorCallback = Callable[[datetime, int], bool]


def _aware(value: Any, label: str) -> datetime:
    if not isinstance(value, datetime) or value.utcoffset() is None:
        raise ValidationError(f"{label} must be a timezone-aware datetime")
    return value


def _is_after(candidate: datetime, after: datetime, inclusive: bool) -> bool:
    moment, bound = instant(candidate), instant(after)
    return moment >= bound if inclusive else moment > bound


def _is_before(candidate: datetime, before: datetime, inclusive: bool) -> bool:
    moment, bound = instant(candidate), instant(before)
    return moment <= bound if inclusive else moment < bound


class RRule:
    """A recurrence rule anchored at a zoned DTSTART.

    Example:
        >>> from datetime import datetime, timezone
        >>> rule = RRule("DAILY", datetime(2025, 1, 1, 9, tzinfo=timezone.utc), count=3)
        >>> [dt.day for dt in rule.all()]
        [1, 2, 3]
    """

    def __init__(
        self,
        freq: Any,
        dtstart: datetime,
        *,
        interval: int = 1,
        count: Optional[int] = None,
        until: Optional[datetime] = None,
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
        tzid: Optional[str] = None,
        r_date: Optional[Iterable[Any]] = None,
        ex_date: Optional[Iterable[Any]] = None,
        max_iterations: Optional[int] = None,
        include_dtstart: bool = False,
    ):
        """Validate the rule fields.

        Args:
            freq: Frequency name ("DAILY") or ``Frequency`` member
            dtstart: Timezone-aware anchor
            tzid: Rule zone; defaults to the zone carried by ``dtstart``
            max_iterations: Step budget; defaults to the configured value

        Raises:
            ValidationError: If any field is invalid
        """
        config = get_config()
        self._rule = build_recurrence_rule(
            freq,
            dtstart,
            tzid=tzid,
            interval=interval,
            count=count,
            until=until,
            by_hour=by_hour,
            by_minute=by_minute,
            by_second=by_second,
            by_day=by_day,
            by_month=by_month,
            by_month_day=by_month_day,
            by_year_day=by_year_day,
            by_week_no=by_week_no,
            by_set_pos=by_set_pos,
            wkst=wkst,
            r_date=r_date,
            ex_date=ex_date,
            max_iterations=max_iterations if max_iterations is not None else config.max_iterations,
            include_dtstart=include_dtstart,
            default_tzid=config.default_tzid,
        )

    @classmethod
    def from_options(cls, rule: RecurrenceRule) -> "RRule":
        """Wrap an already validated model."""
        instance = cls.__new__(cls)
        instance._rule = rule
        return instance

    @classmethod
    def from_string(
        cls,
        text: str,
        *,
        dtstart: Optional[datetime] = None,
        tzid: Optional[str] = None,
        count: Optional[int] = None,
        until: Optional[datetime] = None,
        max_iterations: Optional[int] = None,
        include_dtstart: bool = False,
    ) -> "RRule":
        """Build a rule from RFC 5545 text.

        A DTSTART line in the text wins over the ``dtstart`` argument.
        ``count`` and ``until`` only fill in bounds the text does not set.
        Zone precedence: ``tzid``, then the DTSTART TZID, then the zone of the
        ``dtstart`` argument, then the configured default.

        Raises:
            ValidationError: If no anchor is available or a field is invalid
            RRuleParseError: If the text is malformed
        """
        parsed = parse_rule_text(text)
        anchor: Any = parsed.dtstart if parsed.dtstart is not None else dtstart
        if anchor is None:
            raise ValidationError("dtstart is required")

        zone_name = tzid or parsed.dtstart_tzid
        if zone_name is None and isinstance(anchor, datetime):
            zone_name = zone_name_of(anchor)
        if zone_name is None:
            zone_name = get_config().default_tzid
        zone = resolve_zone(zone_name)

        if isinstance(anchor, datetime):
            if anchor.utcoffset() is None:
                anchor = normalize(anchor.replace(tzinfo=zone))
        elif isinstance(anchor, date):
            anchor = at(zone, anchor)

        rule_until: Any = parsed.until if parsed.until is not None else until
        if isinstance(rule_until, datetime):
            if rule_until.utcoffset() is None:
                rule_until = normalize(rule_until.replace(tzinfo=zone))
        elif isinstance(rule_until, date):
            # date-only UNTIL covers the whole day
            rule_until = at(zone, rule_until, 23, 59, 59)

        fields = dict(parsed.rule)
        if fields.get("count") is None and count is not None:
            fields["count"] = count
        freq = fields.pop("freq")

        return cls(
            freq,
            anchor,
            tzid=zone_name,
            until=rule_until,
            r_date=parsed.r_date,
            ex_date=parsed.ex_date,
            max_iterations=max_iterations,
            include_dtstart=include_dtstart,
            **fields,
        )

    def options(self) -> RecurrenceRule:
        """The sanitized rule model."""
        return self._rule

    def _raw(self, rule: RecurrenceRule, iterator: Optional[IteratorCallback]) -> list[datetime]:
        bound = raw_count_bound(rule.count, rule.r_date)
        budget = StepBudget(rule.max_iterations)
        raw: list[datetime] = []
        for index, occurrence in enumerate(iter_occurrences(rule, budget)):
            if iterator is not None and not iterator(occurrence, index):
                break
            raw.append(occurrence)
            if bound is not None and len(raw) >= bound:
                break
        return raw

    def all(self, iterator: Optional[IteratorCallback] = None) -> list[datetime]:
        """Return every occurrence, RDATE/EXDATE applied.

        Args:
            iterator: Optional ``callback(occurrence, index)`` called for each
                raw occurrence; returning False stops generation before that
                occurrence is kept

        Raises:
            UnboundedQueryError: If the rule has no COUNT/UNTIL and no iterator is given
            IterationLimitExceeded: If generation runs over ``max_iterations``
        """
        rule = self._rule
        if iterator is None and not rule.is_bounded:
            raise UnboundedQueryError(
                "all() requires COUNT, UNTIL or an iterator callback to terminate"
            )
        if rule.count == 0:
            return []
        raw = self._raw(rule, iterator)
        return reconcile(raw, rule.r_date, rule.ex_date, rule.count)

    def between(self, after: datetime, before: datetime, inclusive: bool = False) -> list[datetime]:
        """Occurrences strictly between two instants (or on them, if inclusive).

        Raises:
            ValidationError: If either bound is naive
            IterationLimitExceeded: If generation runs over ``max_iterations``
        """
        after = _aware(after, "after")
        before = _aware(before, "before")
        rule = self._rule

        if rule.count is not None:
            occurrences = self.all()
        else:
            until = before if rule.until is None else min(rule.until, before, key=instant)
            transient = rule.model_copy(update={"until": until.astimezone(rule.zone), "count": None})
            raw = self._raw(transient, None)
            occurrences = reconcile(raw, transient.r_date, transient.ex_date)

        return [
            occurrence
            for occurrence in occurrences
            if _is_after(occurrence, after, inclusive) and _is_before(occurrence, before, inclusive)
        ]

    def next(self, after: Optional[datetime] = None, inclusive: bool = False) -> Optional[datetime]:
        """First occurrence after ``after`` (default: now), or None.

        EXDATEs are skipped and RDATEs are considered.
        """
        after = now_utc() if after is None else _aware(after, "after")
        rule = self._rule

        if rule.count is not None:
            return next((o for o in self.all() if _is_after(o, after, inclusive)), None)

        candidates = [
            value
            for value in rule.r_date
            if _is_after(value, after, inclusive) and not is_excluded(value, rule.ex_date)
        ]
        for occurrence in iter_occurrences(rule, StepBudget(rule.max_iterations)):
            if _is_after(occurrence, after, inclusive) and not is_excluded(occurrence, rule.ex_date):
                candidates.append(occurrence)
                break
        return min(candidates, key=instant) if candidates else None

    def previous(self, before: Optional[datetime] = None, inclusive: bool = False) -> Optional[datetime]:
        """Last occurrence before ``before`` (default: now), or None.

        Generation stops at the first raw occurrence past the boundary.
        """
        before = now_utc() if before is None else _aware(before, "before")
        rule = self._rule

        if rule.count is not None:
            earlier = [o for o in self.all() if _is_before(o, before, inclusive)]
            return earlier[-1] if earlier else None

        candidates = [
            value
            for value in rule.r_date
            if _is_before(value, before, inclusive) and not is_excluded(value, rule.ex_date)
        ]
        last: Optional[datetime] = None
        for occurrence in iter_occurrences(rule, StepBudget(rule.max_iterations)):
            if not _is_before(occurrence, before, inclusive):
                break
            if not is_excluded(occurrence, rule.ex_date):
                last = occurrence
        if last is not None:
            candidates.append(last)
        return max(candidates, key=instant) if candidates else None

    def to_string(self) -> str:
        return format_rule(self._rule)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"<RRule {format_rrule(self._rule)[len('RRULE:'):]} dtstart={self._rule.dtstart.isoformat()}>"
