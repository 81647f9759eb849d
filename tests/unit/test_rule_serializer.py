"""Tests for rendering rules back to RFC 5545 text."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from zoned_rrule import RRule
from zoned_rrule.models import build_recurrence_rule
from zoned_rrule.rule_serializer import format_dtstart, format_rrule, format_rule

pytestmark = pytest.mark.unit

NEW_YORK = ZoneInfo("America/New_York")


class TestFormatRule:
    def test_utc_dtstart(self):
        rule = build_recurrence_rule("DAILY", datetime(2025, 1, 1, 9, tzinfo=timezone.utc))
        assert format_dtstart(rule) == "DTSTART:20250101T090000Z"

    def test_zoned_dtstart(self):
        rule = build_recurrence_rule("DAILY", datetime(1997, 9, 2, 9, tzinfo=NEW_YORK))
        assert format_dtstart(rule) == "DTSTART;TZID=America/New_York:19970902T090000"

    def test_fixed_offset_dtstart(self):
        rule = build_recurrence_rule("DAILY", datetime(2025, 1, 1, 9, tzinfo=timezone(timedelta(hours=-3))))
        assert format_dtstart(rule) == "DTSTART;TZID=-03:00:20250101T090000"

    def test_key_order(self):
        rule = build_recurrence_rule(
            "YEARLY",
            datetime(1997, 9, 2, 9, tzinfo=NEW_YORK),
            interval=2,
            until=datetime(2000, 1, 1, tzinfo=timezone.utc),
            by_set_pos=[1],
            by_second=[0],
            by_minute=[0],
            by_hour=[9],
            by_day=["TU"],
            by_month_day=[1],
            by_year_day=[1],
            by_week_no=[1],
            by_month=[1],
            wkst="SU",
        )
        assert format_rrule(rule) == (
            "RRULE:FREQ=YEARLY;INTERVAL=2;UNTIL=20000101T000000Z;BYMONTH=1;BYWEEKNO=1;"
            "BYYEARDAY=1;BYMONTHDAY=1;BYDAY=TU;BYHOUR=9;BYMINUTE=0;BYSECOND=0;BYSETPOS=1;WKST=SU"
        )

    def test_defaults_are_omitted(self):
        rule = build_recurrence_rule("WEEKLY", datetime(2025, 1, 1, tzinfo=timezone.utc), count=3)
        assert format_rrule(rule) == "RRULE:FREQ=WEEKLY;COUNT=3"

    def test_rdate_and_exdate_lines(self):
        rule = build_recurrence_rule(
            "DAILY",
            datetime(2025, 1, 1, 9, tzinfo=timezone.utc),
            count=3,
            r_date=[datetime(2025, 2, 1, 9, tzinfo=NEW_YORK)],
            ex_date=[datetime(2025, 1, 2, 9, tzinfo=timezone.utc)],
        )
        lines = format_rule(rule).splitlines()
        assert lines[2] == "RDATE:20250201T140000Z"
        assert lines[3] == "EXDATE:20250102T090000Z"


@pytest.mark.parametrize(
    "text",
    [
        "DTSTART;TZID=Europe/London:20231030T140000\nRRULE:FREQ=MONTHLY;INTERVAL=2;COUNT=4;BYDAY=-1MO",
        "DTSTART:19970902T090000Z\nRRULE:FREQ=YEARLY;COUNT=4;BYWEEKNO=1;BYDAY=MO",
        "DTSTART;TZID=Europe/Berlin:20240330T000000\nRRULE:FREQ=HOURLY;COUNT=30;BYHOUR=1,2,3\nEXDATE:20240331T000000Z",
        "DTSTART;TZID=+05:30:20250101T090000\nRRULE:FREQ=DAILY;COUNT=3;BYHOUR=9,21",
    ],
)
def test_text_round_trip_preserves_occurrences(text):
    rule = RRule.from_string(text)
    assert RRule.from_string(rule.to_string()).all() == rule.all()
