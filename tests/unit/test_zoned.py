"""Tests for zoned_rrule.zoned calendar arithmetic."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from zoned_rrule.zoned import (
    add_exact,
    at,
    day_of_year,
    days_in_month,
    days_in_year,
    instant,
    iso_week,
    iso_weeks_in_year,
    month_index,
    normalize,
    resolve_index,
    safe_date,
    shift_month,
    week_start,
    with_time,
)

pytestmark = pytest.mark.unit

LONDON = ZoneInfo("Europe/London")


class TestNormalize:
    def test_gap_resolves_forward(self):
        # 01:30 does not exist in London on 2024-03-31
        resolved = at(LONDON, date(2024, 3, 31), 1, 30)
        assert (resolved.hour, resolved.minute) == (2, 30)
        assert instant(resolved) == datetime(2024, 3, 31, 1, 30, tzinfo=timezone.utc)

    def test_fold_picks_earlier_instant(self):
        resolved = at(LONDON, date(2024, 10, 27), 1, 30)
        assert instant(resolved) == datetime(2024, 10, 27, 0, 30, tzinfo=timezone.utc)

    def test_fold_one_is_preserved(self):
        later = normalize(datetime(2024, 10, 27, 1, 30, fold=1, tzinfo=LONDON))
        assert instant(later) == datetime(2024, 10, 27, 1, 30, tzinfo=timezone.utc)

    def test_ordinary_time_is_unchanged(self):
        value = datetime(2024, 6, 1, 12, tzinfo=LONDON)
        assert normalize(value) == value


class TestTimeHelpers:
    def test_with_time_replaces_fields(self):
        value = datetime(2024, 6, 1, 12, 15, 30, tzinfo=LONDON)
        assert with_time(value, minute=45, second=0) == datetime(2024, 6, 1, 12, 45, tzinfo=LONDON)

    def test_add_exact_crosses_spring_forward(self):
        value = datetime(2024, 3, 31, 0, 30, tzinfo=LONDON)
        moved = add_exact(value, hours=1)
        assert (moved.hour, moved.minute) == (2, 30)

    def test_instant_is_utc(self):
        assert instant(datetime(2024, 6, 1, 12, tzinfo=LONDON)).tzinfo == timezone.utc


class TestCalendar:
    @pytest.mark.parametrize(
        "year,month,expected",
        [(2024, 2, 29), (2025, 2, 28), (2025, 4, 30), (2025, 12, 31)],
    )
    def test_days_in_month(self, year, month, expected):
        assert days_in_month(year, month) == expected

    def test_days_in_year(self):
        assert days_in_year(2024) == 366
        assert days_in_year(1900) == 365

    def test_day_of_year(self):
        assert day_of_year(date(2024, 12, 31)) == 366

    def test_safe_date(self):
        assert safe_date(2025, 2, 30) is None
        assert safe_date(2025, 13, 1) is None
        assert safe_date(2024, 2, 29) == date(2024, 2, 29)

    @pytest.mark.parametrize(
        "year,month,offset,expected",
        [(2025, 11, 2, (2026, 1)), (2025, 1, -1, (2024, 12)), (2025, 6, 18, (2026, 12))],
    )
    def test_shift_month(self, year, month, offset, expected):
        assert shift_month(year, month, offset) == expected

    def test_month_index_is_linear(self):
        assert month_index(2026, 1) - month_index(2025, 12) == 1

    @pytest.mark.parametrize("year,weeks", [(1997, 52), (1998, 53), (2004, 53), (2009, 53), (2025, 52)])
    def test_iso_weeks_in_year(self, year, weeks):
        assert iso_weeks_in_year(year) == weeks

    def test_iso_week_across_year_boundary(self):
        assert iso_week(date(1997, 12, 29)) == (1998, 1)
        assert iso_week(date(1999, 1, 3)) == (1998, 53)

    @pytest.mark.parametrize(
        "day,wkst,expected",
        [
            (date(1997, 8, 5), 0, date(1997, 8, 4)),
            (date(1997, 8, 5), 6, date(1997, 8, 3)),
            (date(1997, 8, 3), 6, date(1997, 8, 3)),
        ],
    )
    def test_week_start(self, day, wkst, expected):
        assert week_start(day, wkst) == expected

    @pytest.mark.parametrize("value,maximum,expected", [(1, 31, 1), (-1, 31, 31), (-3, 30, 28)])
    def test_resolve_index(self, value, maximum, expected):
        assert resolve_index(value, maximum) == expected
