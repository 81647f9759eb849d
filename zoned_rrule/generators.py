"""Per-frequency occurrence generators.

A rule is mapped once per traversal to one ``Strategy``; the strategy's
generator yields candidates in ascending instant order, never before
DTSTART. Bounds are enforced in two places: every strategy stops once a
period starts after UNTIL, and ``iter_occurrences`` drops anything past UNTIL
and anything not strictly after the previous occurrence.

Every loop step (a period, a jump, a candidate probe) ticks a ``StepBudget``;
running over ``max_iterations`` raises ``IterationLimitExceeded``.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import MAXYEAR, date, datetime, timedelta
from enum import Enum
from typing import Optional

from .exceptions import IterationLimitExceeded
from .matcher import (
    DATE_PREDICATES,
    first_failing_date_filter,
    matches_all,
    matches_by_day,
    matches_by_hour,
    matches_by_month,
    matches_by_month_day,
    matches_by_week_no,
    matches_by_year_day,
    matches_date,
    token_matches_in_year,
)
from .models import Frequency, RecurrenceRule
from .setpos import select_by_set_pos
from .zoned import (
    add_exact,
    at,
    days_in_month,
    days_in_year,
    instant,
    month_index,
    normalize,
    resolve_index,
    safe_date,
    shift_month,
    week_start,
    with_time,
)

logger = logging.getLogger(__name__)

# Longest forward scan when looking for a date that satisfies one filter
SCAN_HORIZON_DAYS = 366 * 8

_UNIT_SECONDS = {
    Frequency.HOURLY: 3600,
    Frequency.MINUTELY: 60,
    Frequency.SECONDLY: 1,
}


class Strategy(str, Enum):
    """Generation strategies, listed in selection priority order."""

    MONTHLY_BY_DAY = "monthly_by_day"
    WEEKLY = "weekly"
    MONTHLY_BY_MONTH = "monthly_by_month"
    YEARLY_BY_MONTH = "yearly_by_month"
    YEARLY_EXPANDED = "yearly_expanded"
    FINE_GRAINED_WALK = "fine_grained_walk"
    MONTHLY_BY_YEAR_DAY = "monthly_by_year_day"
    PERIOD_SET_POS = "period_set_pos"
    GENERIC = "generic"


class StepBudget:
    """Counts loop steps and raises once ``limit`` is exceeded."""

    def __init__(self, limit: int, operation: str = "all()"):
        self.limit = limit
        self.operation = operation
        self.steps = 0

    def tick(self) -> None:
        self.steps += 1
        if self.steps > self.limit:
            raise IterationLimitExceeded(self.limit, self.operation)


def select_strategy(rule: RecurrenceRule) -> Strategy:
    """Pick the generation strategy for a rule.

    Conditions are checked in priority order; the first match wins.
    """
    freq = rule.frequency
    day_level = bool(rule.by_day or rule.by_month_day or rule.by_year_day or rule.by_week_no)

    if freq == Frequency.MONTHLY and (rule.by_day or rule.by_month_day):
        return Strategy.MONTHLY_BY_DAY
    if freq == Frequency.WEEKLY and not rule.by_year_day:
        return Strategy.WEEKLY
    if freq == Frequency.MONTHLY and rule.by_month and not day_level:
        return Strategy.MONTHLY_BY_MONTH
    if freq == Frequency.YEARLY and rule.by_month and not day_level:
        return Strategy.YEARLY_BY_MONTH
    if (freq == Frequency.YEARLY and day_level) or (freq == Frequency.WEEKLY and rule.by_year_day):
        return Strategy.YEARLY_EXPANDED
    if freq in (Frequency.MINUTELY, Frequency.SECONDLY) and rule.day_filters_set():
        return Strategy.FINE_GRAINED_WALK
    if freq == Frequency.MONTHLY and rule.by_year_day:
        return Strategy.MONTHLY_BY_YEAR_DAY
    if freq in (Frequency.MINUTELY, Frequency.HOURLY, Frequency.DAILY) and rule.by_set_pos:
        return Strategy.PERIOD_SET_POS
    return Strategy.GENERIC


class GenerationContext:
    """Per-traversal state shared by the strategies.

    Holds the resolved zone, the DTSTART and UNTIL instants, and the
    time-of-day values each day expands to.
    """

    def __init__(self, rule: RecurrenceRule, budget: StepBudget):
        self.rule = rule
        self.budget = budget
        self.zone = rule.zone
        self.dtstart = rule.dtstart.astimezone(self.zone)
        self.start = instant(self.dtstart)
        self.until: Optional[datetime] = instant(rule.until) if rule.until is not None else None
        self.until_date: Optional[date] = (
            rule.until.astimezone(self.zone).date() if rule.until is not None else None
        )
        self.hours = rule.by_hour or (self.dtstart.hour,)
        self.minutes = rule.by_minute or (self.dtstart.minute,)
        self.seconds = rule.by_second or (self.dtstart.second,)
        self.microsecond = self.dtstart.microsecond

    def day_after_until(self, day: date) -> bool:
        return self.until_date is not None and day > self.until_date

    def expand_day(self, day: date) -> list[datetime]:
        """Every BYHOUR x BYMINUTE x BYSECOND time on ``day``, one per instant."""
        return self.expand_days([day])

    def expand_days(self, days: Iterable[date]) -> list[datetime]:
        seen: set[datetime] = set()
        batch = []
        for day in days:
            for hour in self.hours:
                for minute in self.minutes:
                    for second in self.seconds:
                        candidate = at(self.zone, day, hour, minute, second, self.microsecond)
                        moment = instant(candidate)
                        if moment not in seen:
                            seen.add(moment)
                            batch.append(candidate)
        batch.sort(key=instant)
        return batch

    def finish(self, batch: list[datetime]) -> list[datetime]:
        if self.rule.by_set_pos:
            return select_by_set_pos(batch, self.rule.by_set_pos)
        return batch

    def emit(self, batch: Iterable[datetime]) -> Iterator[datetime]:
        for candidate in batch:
            if instant(candidate) >= self.start:
                yield candidate

    def align(self, target: datetime, unit: timedelta) -> datetime:
        """First point of the ``dtstart + k * unit`` grid at or after ``target`` (UTC)."""
        delta = instant(target) - self.start
        if delta <= timedelta(0):
            return self.start
        steps = -((-delta) // unit)
        return self.start + steps * unit


def _add_days(day: date, days: int) -> Optional[date]:
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return None


def _first_date_matching(start: Optional[date], predicate: Callable[[date], bool]) -> Optional[date]:
    """First date on or after ``start`` satisfying ``predicate`` within the scan horizon."""
    current = start
    for _ in range(SCAN_HORIZON_DAYS):
        if current is None:
            return None
        if predicate(current):
            return current
        current = _add_days(current, 1)
    return None


def next_plausible_date(day: date, failing: str, rule: RecurrenceRule) -> Optional[date]:
    """Earliest date after ``day`` that could satisfy the failing filter.

    Returns None only when the calendar runs out.
    """
    if failing == "by_month":
        year, month = day.year, day.month
        for _ in range(12):
            year, month = shift_month(year, month, 1)
            if year > MAXYEAR:
                return None
            if month in rule.by_month:
                return date(year, month, 1)
        return None

    predicate = DATE_PREDICATES[failing]
    found = _first_date_matching(_add_days(day, 1), lambda d: predicate(d, rule))
    if found is None:
        return _add_days(day, SCAN_HORIZON_DAYS)
    return found


def compute_first(ctx: GenerationContext) -> datetime:
    """Analytic lower bound for the first occurrence.

    Jumps to the first requested ISO week (sub-weekly frequencies), then to the
    nearest qualifying weekday, then to the earliest requested hour of that day.
    """
    rule = ctx.rule
    day = ctx.dtstart.date()

    if rule.by_week_no and rule.frequency.rank > Frequency.WEEKLY.rank:
        day = _first_date_matching(day, lambda d: matches_by_week_no(d, rule)) or day

    if rule.by_day:
        if any(token.ordinal is not None for token in rule.by_day) and rule.frequency != Frequency.DAILY:
            day = _first_date_matching(
                day, lambda d: matches_by_month(d, rule) and matches_by_day(d, rule)
            ) or day
        else:
            delta = min((token.weekday - day.weekday()) % 7 for token in rule.by_day)
            day = _add_days(day, delta) or day

    if day == ctx.dtstart.date():
        return ctx.dtstart
    return at(ctx.zone, day, rule.by_hour[0] if rule.by_hour else 0)


def _align_day(origin: date, target: Optional[date], interval: int, after: Optional[date] = None) -> Optional[date]:
    """Snap ``target`` forward onto the ``origin + k * interval`` day grid."""
    if target is None:
        return None
    offset = (target - origin).days
    steps = -(-offset // interval) if offset > 0 else 0
    aligned = _add_days(origin, steps * interval)
    if after is not None and aligned is not None and aligned <= after:
        aligned = _add_days(after, interval)
    return aligned


def _straddles_anchor(batch: list[datetime], start: datetime) -> bool:
    moments = [instant(candidate) for candidate in batch]
    return any(moment < start for moment in moments) and any(moment == start for moment in moments)


def _monthly_by_day(ctx: GenerationContext) -> Iterator[datetime]:
    """MONTHLY with BYDAY and/or BYMONTHDAY: one batch per month."""
    rule = ctx.rule
    year, month = ctx.dtstart.year, ctx.dtstart.month
    first_period = True
    while True:
        ctx.budget.tick()
        if year > MAXYEAR or ctx.day_after_until(date(year, month, 1)):
            return
        days = [
            date(year, month, day)
            for day in range(1, days_in_month(year, month) + 1)
            if matches_date(date(year, month, day), rule)
        ]
        batch = ctx.finish(ctx.expand_days(days))
        if first_period:
            first_period = False
            # dtstart mid-batch with earlier siblings: the month is skipped
            if _straddles_anchor(batch, ctx.start):
                batch = []
        yield from ctx.emit(batch)
        year, month = shift_month(year, month, rule.interval)


def _weekly(ctx: GenerationContext) -> Iterator[datetime]:
    """WEEKLY: one batch per WKST-aligned week, stepping ``interval`` weeks."""
    rule = ctx.rule
    if rule.by_day:
        targets = {token.weekday for token in rule.by_day}
    elif rule.by_month_day:
        targets = set(range(7))
    else:
        targets = {ctx.dtstart.weekday()}

    first_day = ctx.dtstart.date()
    while first_day.weekday() not in targets:
        first_day += timedelta(days=1)
    cursor: Optional[date] = week_start(first_day, rule.week_start)

    while True:
        ctx.budget.tick()
        if cursor is None or ctx.day_after_until(cursor):
            return
        days = []
        for offset in range(7):
            day = _add_days(cursor, offset)
            if day is None:
                break
            if (
                day.weekday() in targets
                and matches_by_month(day, rule)
                and matches_by_month_day(day, rule)
                and matches_by_week_no(day, rule)
            ):
                days.append(day)
        yield from ctx.emit(ctx.finish(ctx.expand_days(days)))
        cursor = _add_days(cursor, 7 * rule.interval)


def _monthly_by_month(ctx: GenerationContext) -> Iterator[datetime]:
    """MONTHLY limited by BYMONTH only.

    Walks a linear index over the sorted months so the order survives year
    boundaries; months off the ``interval`` grid are passed over.
    """
    rule = ctx.rule
    months = sorted(rule.by_month)
    anchor_month = month_index(ctx.dtstart.year, ctx.dtstart.month)
    offset = next((i for i, month in enumerate(months) if month >= ctx.dtstart.month), len(months))

    while True:
        ctx.budget.tick()
        year = ctx.dtstart.year + offset // len(months)
        month = months[offset % len(months)]
        offset += 1
        if year > MAXYEAR or ctx.day_after_until(date(year, month, 1)):
            return
        if (month_index(year, month) - anchor_month) % rule.interval:
            continue
        day = safe_date(year, month, ctx.dtstart.day)
        if day is None:
            continue
        yield from ctx.emit(ctx.finish(ctx.expand_day(day)))


def _yearly_by_month(ctx: GenerationContext) -> Iterator[datetime]:
    """YEARLY limited by BYMONTH only: DTSTART's day in each listed month."""
    rule = ctx.rule
    year = ctx.dtstart.year
    while True:
        ctx.budget.tick()
        if year > MAXYEAR or ctx.day_after_until(date(year, 1, 1)):
            return
        days = []
        for month in sorted(rule.by_month):
            day = safe_date(year, month, ctx.dtstart.day)
            if day is not None:
                days.append(day)
        yield from ctx.emit(ctx.finish(ctx.expand_days(days)))
        year += rule.interval


def _year_days(ctx: GenerationContext, year: int) -> list[date]:
    """Dates of ``year`` satisfying every day-level filter.

    Ordinal BYDAY tokens count across the whole year unless BYMONTH or
    BYWEEKNO is present. BYWEEKNO alone keeps DTSTART's weekday.
    """
    rule = ctx.rule
    year_relative = (
        not rule.by_month
        and not rule.by_week_no
        and any(token.ordinal is not None for token in rule.by_day)
    )
    implicit_weekday = None
    if rule.by_week_no and not (rule.by_day or rule.by_month_day or rule.by_year_day):
        implicit_weekday = ctx.dtstart.weekday()

    result = []
    day: Optional[date] = date(year, 1, 1)
    while day is not None and day.year == year:
        if (
            matches_by_month(day, rule)
            and matches_by_week_no(day, rule)
            and matches_by_year_day(day, rule)
            and matches_by_month_day(day, rule)
            and (implicit_weekday is None or day.weekday() == implicit_weekday)
        ):
            if not rule.by_day:
                result.append(day)
            elif year_relative:
                if any(token_matches_in_year(day, token) for token in rule.by_day):
                    result.append(day)
            elif matches_by_day(day, rule):
                result.append(day)
        day = _add_days(day, 1)
    return result


def _yearly_expanded(ctx: GenerationContext) -> Iterator[datetime]:
    """YEARLY with day-level filters (or WEEKLY with BYYEARDAY): one batch per year.

    The WEEKLY variant advances one year at a time regardless of INTERVAL.
    """
    rule = ctx.rule
    step = 1 if rule.frequency == Frequency.WEEKLY else rule.interval
    year = ctx.dtstart.year
    while True:
        ctx.budget.tick()
        if year > MAXYEAR or ctx.day_after_until(date(year, 1, 1)):
            return
        yield from ctx.emit(ctx.finish(ctx.expand_days(_year_days(ctx, year))))
        year += step


def _monthly_by_year_day(ctx: GenerationContext) -> Iterator[datetime]:
    """MONTHLY with BYYEARDAY: resolve year days, keep months on the interval grid."""
    rule = ctx.rule
    anchor_month = month_index(ctx.dtstart.year, ctx.dtstart.month)
    year = ctx.dtstart.year
    while True:
        ctx.budget.tick()
        if year > MAXYEAR or ctx.day_after_until(date(year, 1, 1)):
            return
        total = days_in_year(year)
        resolved = sorted(
            {resolve_index(value, total) for value in rule.by_year_day if 1 <= resolve_index(value, total) <= total}
        )
        buckets: dict[int, list[date]] = {}
        for ordinal in resolved:
            day = date(year, 1, 1) + timedelta(days=ordinal - 1)
            if (month_index(day.year, day.month) - anchor_month) % rule.interval:
                continue
            if not matches_by_month(day, rule) or not matches_by_week_no(day, rule):
                continue
            buckets.setdefault(day.month, []).append(day)
        for month in sorted(buckets):
            yield from ctx.emit(ctx.finish(ctx.expand_days(buckets[month])))
        year += 1


def _period_start(local: datetime, freq: Frequency) -> datetime:
    if freq == Frequency.HOURLY:
        return normalize(local.replace(minute=0, second=0, microsecond=0))
    if freq == Frequency.MINUTELY:
        return normalize(local.replace(second=0, microsecond=0))
    return local


def _time_jump(local: datetime, ctx: GenerationContext) -> Optional[datetime]:
    """Next local time that could pass the coarse time filters, or None if ``local`` passes."""
    rule = ctx.rule
    freq = rule.frequency

    if rule.by_hour and not matches_by_hour(local, rule):
        later = [hour for hour in rule.by_hour if hour > local.hour]
        if later:
            return at(ctx.zone, local.date(), later[0])
        next_day = _add_days(local.date(), 1)
        if next_day is None:
            return None
        return at(ctx.zone, next_day, rule.by_hour[0])

    if freq in (Frequency.MINUTELY, Frequency.SECONDLY) and rule.by_minute and local.minute not in rule.by_minute:
        later = [minute for minute in rule.by_minute if minute > local.minute]
        if later:
            return with_time(local, minute=later[0], second=0)
        return add_exact(local.replace(minute=0, second=0, microsecond=0), hours=1)

    if freq == Frequency.SECONDLY and rule.by_second and local.second not in rule.by_second:
        later = [second for second in rule.by_second if second > local.second]
        if later:
            return with_time(local, second=later[0])
        return add_exact(local.replace(second=0, microsecond=0), minutes=1)

    return None


def _expand_period(local: datetime, ctx: GenerationContext) -> list[datetime]:
    freq = ctx.rule.frequency
    if freq == Frequency.HOURLY:
        candidates = [
            normalize(local.replace(minute=minute, second=second, microsecond=ctx.microsecond))
            for minute in ctx.minutes
            for second in ctx.seconds
        ]
    elif freq == Frequency.MINUTELY:
        candidates = [
            normalize(local.replace(second=second, microsecond=ctx.microsecond)) for second in ctx.seconds
        ]
    else:
        candidates = [local]

    unique: dict[datetime, datetime] = {}
    for candidate in candidates:
        unique.setdefault(instant(candidate), candidate)
    return [unique[moment] for moment in sorted(unique)]


def _walk_sub_daily(ctx: GenerationContext) -> Iterator[datetime]:
    """HOURLY/MINUTELY/SECONDLY walk over the ``dtstart + k * interval`` grid.

    A failing date filter jumps to the next plausible date and a failing time
    filter to the next plausible hour, minute or second; both re-snap to the grid.
    """
    rule = ctx.rule
    freq = rule.frequency
    unit = timedelta(seconds=_UNIT_SECONDS[freq] * rule.interval)
    cursor = ctx.align(compute_first(ctx), unit)

    while True:
        ctx.budget.tick()
        try:
            local = cursor.astimezone(ctx.zone)
        except OverflowError:
            return
        if ctx.until is not None and instant(_period_start(local, freq)) > ctx.until:
            return

        failing = first_failing_date_filter(local, rule)
        if failing is not None:
            target = next_plausible_date(local.date(), failing, rule)
            if target is None:
                return
            jump_to = ctx.align(at(ctx.zone, target), unit)
            cursor = jump_to if jump_to > cursor else cursor + unit
            continue

        jump = _time_jump(local, ctx)
        if jump is not None:
            jump_to = ctx.align(jump, unit)
            cursor = jump_to if jump_to > cursor else cursor + unit
            continue

        batch = [candidate for candidate in _expand_period(local, ctx) if matches_all(candidate, rule)]
        yield from ctx.emit(ctx.finish(batch))
        cursor = cursor + unit


def _walk_days(ctx: GenerationContext) -> Iterator[datetime]:
    """DAILY walk over the ``dtstart + k * interval`` day grid with filter jumps."""
    rule = ctx.rule
    origin = ctx.dtstart.date()
    day = _align_day(origin, compute_first(ctx).date(), rule.interval)

    while True:
        ctx.budget.tick()
        if day is None or ctx.day_after_until(day):
            return
        failing = first_failing_date_filter(day, rule)
        if failing is not None:
            day = _align_day(origin, next_plausible_date(day, failing, rule), rule.interval, after=day)
            continue
        yield from ctx.emit(ctx.finish(ctx.expand_day(day)))
        day = _add_days(day, rule.interval)


def _walk_months(ctx: GenerationContext) -> Iterator[datetime]:
    """MONTHLY without day-level filters: DTSTART's day of month, every ``interval`` months."""
    rule = ctx.rule
    year, month = ctx.dtstart.year, ctx.dtstart.month
    while True:
        ctx.budget.tick()
        if year > MAXYEAR or ctx.day_after_until(date(year, month, 1)):
            return
        day = safe_date(year, month, ctx.dtstart.day)
        if day is not None and matches_date(day, rule):
            yield from ctx.emit(ctx.finish(ctx.expand_day(day)))
        year, month = shift_month(year, month, rule.interval)


def _walk_years(ctx: GenerationContext) -> Iterator[datetime]:
    """YEARLY without day-level filters: DTSTART's month and day, every ``interval`` years."""
    rule = ctx.rule
    year = ctx.dtstart.year
    while True:
        ctx.budget.tick()
        if year > MAXYEAR or ctx.day_after_until(date(year, 1, 1)):
            return
        day = safe_date(year, ctx.dtstart.month, ctx.dtstart.day)
        if day is not None:
            yield from ctx.emit(ctx.finish(ctx.expand_day(day)))
        year += rule.interval


def _fine_grained_walk(ctx: GenerationContext) -> Iterator[datetime]:
    """MINUTELY/SECONDLY with date filters: grid walk with constraint-priority jumps.

    Shares ``_walk_sub_daily`` with the sub-daily branch of ``_generic``.
    """
    return _walk_sub_daily(ctx)


def _period_set_pos(ctx: GenerationContext) -> Iterator[datetime]:
    """MINUTELY/HOURLY/DAILY with BYSETPOS: per-period expansion then selection.

    Runs the same walkers as ``_generic``; BYSETPOS is applied per period by ``GenerationContext.finish``.
    """
    if ctx.rule.frequency == Frequency.DAILY:
        return _walk_days(ctx)
    return _walk_sub_daily(ctx)


def _generic(ctx: GenerationContext) -> Iterator[datetime]:
    """Fallback for the remaining shapes."""
    freq = ctx.rule.frequency
    if freq == Frequency.YEARLY:
        return _walk_years(ctx)
    if freq == Frequency.MONTHLY:
        return _walk_months(ctx)
    if freq == Frequency.DAILY:
        return _walk_days(ctx)
    if freq.is_sub_daily:
        return _walk_sub_daily(ctx)
    raise ValueError(f"No generic walk for {freq.value}")


STRATEGIES: dict[Strategy, Callable[[GenerationContext], Iterator[datetime]]] = {
    Strategy.MONTHLY_BY_DAY: _monthly_by_day,
    Strategy.WEEKLY: _weekly,
    Strategy.MONTHLY_BY_MONTH: _monthly_by_month,
    Strategy.YEARLY_BY_MONTH: _yearly_by_month,
    Strategy.YEARLY_EXPANDED: _yearly_expanded,
    Strategy.FINE_GRAINED_WALK: _fine_grained_walk,
    Strategy.MONTHLY_BY_YEAR_DAY: _monthly_by_year_day,
    Strategy.PERIOD_SET_POS: _period_set_pos,
    Strategy.GENERIC: _generic,
}


def iter_occurrences(rule: RecurrenceRule, budget: Optional[StepBudget] = None) -> Iterator[datetime]:
    """Yield raw rule occurrences (before RDATE/EXDATE) in ascending order.

    UNTIL is applied here; COUNT is left to the consumer. With
    ``include_dtstart`` the anchor is yielded first and never repeated.

    Args:
        rule: Validated rule
        budget: Step budget to charge; a fresh one from ``rule.max_iterations`` by default

    Raises:
        IterationLimitExceeded: If the budget runs out before the consumer stops
    """
    if budget is None:
        budget = StepBudget(rule.max_iterations)
    ctx = GenerationContext(rule, budget)
    strategy = select_strategy(rule)
    logger.debug("Generating %s rule with %s strategy", rule.frequency.value, strategy.value)

    last: Optional[datetime] = None
    if rule.include_dtstart and (ctx.until is None or ctx.start <= ctx.until):
        last = ctx.start
        yield ctx.dtstart

    for candidate in STRATEGIES[strategy](ctx):
        moment = instant(candidate)
        if ctx.until is not None and moment > ctx.until:
            return
        if last is not None and moment <= last:
            continue
        last = moment
        yield candidate
