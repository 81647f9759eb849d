"""Tests for strategy selection and the per-frequency generators."""

from datetime import date, datetime, timedelta, timezone
from itertools import islice
from zoneinfo import ZoneInfo

import pytest

from zoned_rrule.exceptions import IterationLimitExceeded
from zoned_rrule.generators import (
    GenerationContext,
    StepBudget,
    Strategy,
    compute_first,
    iter_occurrences,
    next_plausible_date,
    select_strategy,
)
from zoned_rrule.models import build_recurrence_rule
from zoned_rrule.zoned import instant

pytestmark = pytest.mark.unit

START = datetime(2025, 1, 1, 9, tzinfo=timezone.utc)
NEW_YORK = ZoneInfo("America/New_York")


def rule(freq, dtstart=START, **kwargs):
    return build_recurrence_rule(freq, dtstart, **kwargs)


def take(r, n):
    return list(islice(iter_occurrences(r), n))


class TestSelectStrategy:
    @pytest.mark.parametrize(
        "freq,kwargs,expected",
        [
            ("MONTHLY", {"by_day": ["MO"]}, Strategy.MONTHLY_BY_DAY),
            ("MONTHLY", {"by_month_day": [1], "by_month": [3]}, Strategy.MONTHLY_BY_DAY),
            ("WEEKLY", {}, Strategy.WEEKLY),
            ("WEEKLY", {"by_month": [1]}, Strategy.WEEKLY),
            ("MONTHLY", {"by_month": [1, 6]}, Strategy.MONTHLY_BY_MONTH),
            ("YEARLY", {"by_month": [6, 7]}, Strategy.YEARLY_BY_MONTH),
            ("YEARLY", {"by_day": ["1TU"]}, Strategy.YEARLY_EXPANDED),
            ("YEARLY", {"by_week_no": [20]}, Strategy.YEARLY_EXPANDED),
            ("WEEKLY", {"by_year_day": [100]}, Strategy.YEARLY_EXPANDED),
            ("MINUTELY", {"by_day": ["MO"]}, Strategy.FINE_GRAINED_WALK),
            ("SECONDLY", {"by_month": [2]}, Strategy.FINE_GRAINED_WALK),
            ("MONTHLY", {"by_year_day": [1, 100]}, Strategy.MONTHLY_BY_YEAR_DAY),
            ("MINUTELY", {"by_second": [0, 30], "by_set_pos": [1]}, Strategy.PERIOD_SET_POS),
            ("DAILY", {"by_hour": [9, 17], "by_set_pos": [-1]}, Strategy.PERIOD_SET_POS),
            ("DAILY", {}, Strategy.GENERIC),
            ("HOURLY", {"by_day": ["MO"]}, Strategy.GENERIC),
            ("YEARLY", {}, Strategy.GENERIC),
            ("MONTHLY", {"by_month": [1], "by_week_no": [2]}, Strategy.GENERIC),
        ],
    )
    def test_priority_table(self, freq, kwargs, expected):
        assert select_strategy(rule(freq, **kwargs)) == expected


class TestStepBudget:
    def test_raises_after_limit(self):
        budget = StepBudget(2)
        budget.tick()
        budget.tick()
        with pytest.raises(IterationLimitExceeded, match=r"Maximum iterations \(2\) exceeded in all\(\)") as exc:
            budget.tick()
        assert exc.value.limit == 2
        assert exc.value.operation == "all()"

    def test_unbounded_walk_hits_budget(self):
        r = rule("DAILY", max_iterations=5)
        with pytest.raises(IterationLimitExceeded):
            list(iter_occurrences(r))


class TestComputeFirst:
    def test_anchor_is_dtstart_when_it_qualifies(self):
        r = rule("DAILY")
        assert compute_first(GenerationContext(r, StepBudget(10))) == r.dtstart

    def test_jumps_to_first_qualifying_weekday(self):
        r = rule("HOURLY", by_day=["FR"], by_hour=[8, 10])
        first = compute_first(GenerationContext(r, StepBudget(10)))
        assert first == datetime(2025, 1, 3, 8, tzinfo=r.zone)

    def test_jumps_to_requested_iso_week(self):
        r = rule("DAILY", by_week_no=[3])
        first = compute_first(GenerationContext(r, StepBudget(10)))
        assert first.date() == date(2025, 1, 13)


class TestNextPlausibleDate:
    def test_by_month_jumps_to_first_of_next_listed_month(self):
        r = rule("DAILY", by_month=[3, 9])
        assert next_plausible_date(date(2025, 4, 10), "by_month", r) == date(2025, 9, 1)
        assert next_plausible_date(date(2025, 10, 1), "by_month", r) == date(2026, 3, 1)

    def test_other_filters_scan_forward(self):
        r = rule("DAILY", by_month_day=[13])
        assert next_plausible_date(date(2025, 1, 20), "by_month_day", r) == date(2025, 2, 13)


class TestIterOccurrences:
    def test_daily_keeps_wall_time_across_dst(self):
        r = rule("DAILY", datetime(1997, 10, 24, 9, tzinfo=NEW_YORK))
        hours = [dt.hour for dt in take(r, 5)]
        assert hours == [9] * 5

    def test_until_is_inclusive(self):
        r = rule("DAILY", until=datetime(2025, 1, 3, 9, tzinfo=timezone.utc))
        assert [dt.day for dt in iter_occurrences(r)] == [1, 2, 3]

    def test_include_dtstart_emits_anchor_once(self):
        r = rule("MONTHLY", datetime(2025, 1, 15, 9, tzinfo=timezone.utc), by_month_day=[1], include_dtstart=True)
        days = [(dt.month, dt.day) for dt in take(r, 3)]
        assert days == [(1, 15), (2, 1), (3, 1)]

    def test_output_is_strictly_increasing(self):
        r = rule("HOURLY", datetime(2024, 10, 26, 22, tzinfo=ZoneInfo("Europe/London")))
        moments = [instant(dt) for dt in take(r, 8)]
        assert all(a < b for a, b in zip(moments, moments[1:]))
        assert moments[1] - moments[0] == timedelta(hours=1)

    def test_monthly_skips_invalid_days(self):
        r = rule("MONTHLY", datetime(2025, 1, 31, 9, tzinfo=timezone.utc))
        assert [dt.month for dt in take(r, 4)] == [1, 3, 5, 7]

    def test_yearly_feb_29_only_in_leap_years(self):
        r = rule("YEARLY", datetime(2024, 2, 29, tzinfo=timezone.utc))
        assert [dt.year for dt in take(r, 3)] == [2024, 2028, 2032]

    def test_monthly_by_month_crosses_year(self):
        r = rule("MONTHLY", datetime(2025, 10, 5, tzinfo=timezone.utc), interval=2, by_month=[2, 6, 10, 12])
        assert [(dt.year, dt.month) for dt in take(r, 4)] == [(2025, 10), (2025, 12), (2026, 2), (2026, 6)]

    def test_monthly_by_year_day(self):
        r = rule("MONTHLY", datetime(2025, 1, 1, tzinfo=timezone.utc), interval=2, by_year_day=[1, 32, 60, 100])
        # day 32 is Feb 1 (odd month offset) and 100 is Apr 10 (odd offset); 60 is Mar 1
        assert [dt.date() for dt in take(r, 3)] == [date(2025, 1, 1), date(2025, 3, 1), date(2026, 1, 1)]

    def test_first_month_straddling_dtstart_is_skipped(self):
        r = rule("MONTHLY", datetime(2025, 1, 15, tzinfo=timezone.utc), by_month_day=[1, 15])
        assert [dt.date() for dt in take(r, 2)] == [date(2025, 2, 1), date(2025, 2, 15)]

    def test_fine_grained_walk_jumps_between_days(self):
        r = rule("MINUTELY", datetime(2025, 1, 1, tzinfo=timezone.utc), interval=30, by_day=["FR"], by_hour=[9])
        got = take(r, 3)
        assert got == [
            datetime(2025, 1, 3, 9, 0, tzinfo=timezone.utc),
            datetime(2025, 1, 3, 9, 30, tzinfo=timezone.utc),
            datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc),
        ]

    def test_secondly_with_minute_filter(self):
        r = rule("SECONDLY", datetime(2025, 1, 1, 0, 0, 58, tzinfo=timezone.utc), by_minute=[1], by_second=[0, 1])
        got = take(r, 3)
        assert got == [
            datetime(2025, 1, 1, 0, 1, 0, tzinfo=timezone.utc),
            datetime(2025, 1, 1, 0, 1, 1, tzinfo=timezone.utc),
            datetime(2025, 1, 1, 1, 1, 0, tzinfo=timezone.utc),
        ]

    def test_daily_set_pos_picks_last_time(self):
        r = rule("DAILY", by_hour=[9, 12, 17], by_minute=[0], by_set_pos=[-1])
        assert [(dt.day, dt.hour) for dt in take(r, 2)] == [(1, 17), (2, 17)]

    def test_calendar_end_stops_quietly(self):
        r = rule("YEARLY", datetime(9998, 6, 1, tzinfo=timezone.utc))
        assert [dt.year for dt in iter_occurrences(r)] == [9998, 9999]

    @pytest.mark.parametrize(
        "freq,expected",
        [
            ("WEEKLY", [date(2025, 4, 10), date(2026, 4, 10), date(2027, 4, 10)]),
            ("YEARLY", [date(2025, 4, 10), date(2028, 4, 9), date(2031, 4, 10)]),
        ],
    )
    def test_by_year_day_interval_per_frequency(self, freq, expected):
        # WEEKLY with BYYEARDAY walks every year; YEARLY honors INTERVAL
        got = take(rule(freq, interval=3, by_year_day=[100]), 3)
        assert [dt.date() for dt in got] == expected
        assert all(dt.hour == 9 for dt in got)
