"""Tests for BY* constraint predicates."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from zoned_rrule.matcher import (
    first_failing_date_filter,
    matches_all,
    matches_by_day,
    matches_by_hour,
    matches_by_month_day,
    matches_by_week_no,
    matches_by_year_day,
    pick_ordinal,
    token_matches_in_year,
    weekday_dates_in_month,
    weekday_dates_in_year,
)
from zoned_rrule.models import WeekdayToken, build_recurrence_rule

pytestmark = pytest.mark.unit

START = datetime(2025, 1, 1, 9, tzinfo=timezone.utc)
LONDON = ZoneInfo("Europe/London")


def rule(freq="MONTHLY", **kwargs):
    return build_recurrence_rule(freq, START, **kwargs)


class TestOrdinals:
    def test_weekday_dates_in_month(self):
        mondays = weekday_dates_in_month(2025, 9, 0)
        assert mondays == [date(2025, 9, 1), date(2025, 9, 8), date(2025, 9, 15), date(2025, 9, 22), date(2025, 9, 29)]

    def test_weekday_dates_in_year(self):
        assert len(weekday_dates_in_year(2025, 2)) == 53
        assert len(weekday_dates_in_year(2025, 3)) == 52

    @pytest.mark.parametrize("ordinal,expected", [(1, 1), (-1, 29), (5, 29), (6, None), (-6, None)])
    def test_pick_ordinal(self, ordinal, expected):
        picked = pick_ordinal(weekday_dates_in_month(2025, 9, 0), ordinal)
        assert (picked.day if picked else None) == expected

    def test_token_matches_in_year(self):
        assert token_matches_in_year(date(1997, 12, 25), WeekdayToken.parse("-1TH"))
        assert not token_matches_in_year(date(1997, 12, 18), WeekdayToken.parse("-1TH"))


class TestDatePredicates:
    def test_unset_filters_match(self):
        r = rule()
        assert first_failing_date_filter(date(2025, 5, 5), r) is None

    @pytest.mark.parametrize(
        "day,expected",
        [(date(2025, 2, 28), True), (date(2024, 2, 28), False), (date(2024, 2, 29), True), (date(2025, 2, 1), True)],
    )
    def test_by_month_day_negative(self, day, expected):
        assert matches_by_month_day(day, rule(by_month_day=[1, -1])) is expected

    def test_by_year_day_negative(self):
        r = rule("YEARLY", by_year_day=[-1])
        assert matches_by_year_day(date(2024, 12, 31), r)
        assert not matches_by_year_day(date(2024, 12, 30), r)

    def test_by_week_no_uses_iso_year(self):
        r = rule("YEARLY", by_week_no=[1])
        assert matches_by_week_no(date(1997, 12, 29), r)
        assert not matches_by_week_no(date(1997, 12, 28), r)

    def test_by_week_no_negative_resolves_against_iso_year(self):
        r = rule("YEARLY", by_week_no=[-1])
        assert matches_by_week_no(date(1999, 1, 3), r)
        assert matches_by_week_no(date(1997, 12, 28), r)

    def test_by_day_month_relative_ordinal(self):
        r = rule(by_day=["-1MO"])
        assert matches_by_day(date(2025, 9, 29), r)
        assert not matches_by_day(date(2025, 9, 22), r)

    def test_by_day_daily_ignores_ordinal(self):
        r = rule("DAILY", by_day=["MO"])
        assert matches_by_day(date(2025, 9, 22), r)
        assert not matches_by_day(date(2025, 9, 23), r)

    def test_first_failing_follows_priority(self):
        r = rule(by_month=[3], by_month_day=[15], by_day=["MO"])
        assert first_failing_date_filter(date(2025, 4, 1), r) == "by_month"
        assert first_failing_date_filter(date(2025, 3, 1), r) == "by_month_day"
        assert first_failing_date_filter(date(2025, 3, 15), r) == "by_day"


class TestTimePredicates:
    def test_by_hour_tolerates_gap(self):
        r = build_recurrence_rule("HOURLY", datetime(2024, 3, 30, tzinfo=LONDON), by_hour=[1])
        # 01:00 on 2024-03-31 does not exist and becomes 02:00 BST
        candidate = datetime(2024, 3, 31, 2, tzinfo=LONDON)
        assert matches_by_hour(candidate, r)
        assert not matches_by_hour(datetime(2024, 3, 31, 3, tzinfo=LONDON), r)

    def test_matches_all(self):
        r = rule("MINUTELY", by_month=[1], by_minute=[0, 30], by_second=[0])
        assert matches_all(datetime(2025, 1, 5, 10, 30, tzinfo=timezone.utc), r)
        assert not matches_all(datetime(2025, 1, 5, 10, 31, tzinfo=timezone.utc), r)
        assert not matches_all(datetime(2025, 2, 5, 10, 30, tzinfo=timezone.utc), r)
