"""Time zone name resolution and clock utilities for zoned_rrule."""

from __future__ import annotations

import datetime
import logging
import os
import re
from functools import lru_cache
from typing import ClassVar, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

UTC_NAME = "UTC"

_OFFSET_RE = re.compile(r"^(?:UTC|GMT)?([+-])(\d{1,2}):?(\d{2})?$")


class ZoneResolver:
    """Resolves zone names found in rule text to tzinfo objects."""

    # Windows timezone names to IANA identifier mapping
    # Common Windows timezones used in ICS files from Outlook/Exchange
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "Alaskan Standard Time": "America/Anchorage",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "US Mountain Standard Time": "America/Phoenix",
        "Atlantic Standard Time": "America/Halifax",
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "W. Europe Standard Time": "Europe/Berlin",
        "Romance Standard Time": "Europe/Paris",
        "Central Europe Standard Time": "Europe/Budapest",
        "Central European Standard Time": "Europe/Warsaw",
        "E. Europe Standard Time": "Europe/Chisinau",
        "FLE Standard Time": "Europe/Kiev",
        "GTB Standard Time": "Europe/Bucharest",
        "Russian Standard Time": "Europe/Moscow",
        "India Standard Time": "Asia/Kolkata",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "Korea Standard Time": "Asia/Seoul",
        "Singapore Standard Time": "Asia/Singapore",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "E. Australia Standard Time": "Australia/Brisbane",
        "W. Australia Standard Time": "Australia/Perth",
        "New Zealand Standard Time": "Pacific/Auckland",
        "E. South America Standard Time": "America/Sao_Paulo",
        "South Africa Standard Time": "Africa/Johannesburg",
    }

    # Obsolete or informal names that zoneinfo may not ship
    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "Z": UTC_NAME,
        "GMT": UTC_NAME,
        "Etc/UTC": UTC_NAME,
        "Etc/GMT": UTC_NAME,
        "Universal": UTC_NAME,
        "Zulu": UTC_NAME,
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "Asia/Calcutta": "Asia/Kolkata",
        "Asia/Rangoon": "Asia/Yangon",
    }

    def normalize_name(self, tz_name: str) -> Optional[str]:
        """Map a zone name to a canonical identifier.

        Windows names and aliases are translated first. Fixed offsets such as
        "+05:30" come back in canonical "+HH:MM" form.

        Args:
            tz_name: Zone name as found in TZID parameters or passed by callers

        Returns:
            Canonical name, or None when the name cannot be resolved
        """
        if not tz_name:
            return None
        name = tz_name.strip().strip('"')

        offset = self._parse_offset(name)
        if offset is not None:
            return _format_offset(offset)

        name = self.WINDOWS_TZ_MAP.get(name, name)
        name = self.TZ_ALIAS_MAP.get(name, name)
        if name.upper() == UTC_NAME:
            return UTC_NAME
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown time zone %r", tz_name)
            return None
        return name

    def resolve(self, tz_name: str) -> datetime.tzinfo:
        """Return the tzinfo for a zone name.

        Raises:
            ValidationError: If the name cannot be resolved
        """
        canonical = self.normalize_name(tz_name)
        if canonical is None:
            raise ValidationError(f"Unknown time zone: {tz_name!r}")
        return _zone_for(canonical)

    @staticmethod
    def _parse_offset(name: str) -> Optional[datetime.timedelta]:
        match = _OFFSET_RE.match(name)
        if not match:
            return None
        sign, hours, minutes = match.groups()
        delta = datetime.timedelta(hours=int(hours), minutes=int(minutes or 0))
        if delta >= datetime.timedelta(hours=24):
            return None
        return -delta if sign == "-" else delta


@lru_cache(maxsize=128)
def _zone_for(canonical: str) -> datetime.tzinfo:
    if canonical == UTC_NAME:
        return ZoneInfo(UTC_NAME)
    if canonical[0] in "+-":
        offset = ZoneResolver._parse_offset(canonical)
        if offset is not None:
            return datetime.timezone(offset, canonical)
    return ZoneInfo(canonical)


def _format_offset(offset: datetime.timedelta) -> str:
    total_minutes = int(offset.total_seconds()) // 60
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


class TimeProvider:
    """Provides current time with test time override support."""

    ENV_TEST_TIME = "ZONED_RRULE_TEST_TIME"

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via the ZONED_RRULE_TEST_TIME environment
        variable. Format: ISO 8601 datetime string (e.g. "2025-10-27T08:20:00-07:00").
        Naive values are taken as UTC.

        Returns:
            Current time in UTC with timezone info
        """
        test_time = os.environ.get(self.ENV_TEST_TIME)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                return dt.replace(tzinfo=datetime.timezone.utc)
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", self.ENV_TEST_TIME, test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


# Module-level singletons
_resolver = ZoneResolver()
_time_provider = TimeProvider()


def normalize_timezone_name(tz_name: str) -> Optional[str]:
    """Normalize a zone name (convenience function).

    Examples:
        >>> normalize_timezone_name("Pacific Standard Time")
        'America/Los_Angeles'
        >>> normalize_timezone_name("US/Eastern")
        'America/New_York'
        >>> normalize_timezone_name("+0530")
        '+05:30'
    """
    return _resolver.normalize_name(tz_name)


def resolve_zone(tz_name: str) -> datetime.tzinfo:
    """Resolve a zone name to a tzinfo (convenience function)."""
    return _resolver.resolve(tz_name)


def zone_name_of(dt: datetime.datetime) -> Optional[str]:
    """Return the zone name carried by an aware datetime.

    ZoneInfo objects report their key, UTC-like zones report "UTC" and other
    fixed offsets report "+HH:MM". Returns None for naive datetimes.
    """
    tzinfo = dt.tzinfo
    if tzinfo is None or dt.utcoffset() is None:
        return None
    key = getattr(tzinfo, "key", None)
    if key:
        return normalize_timezone_name(key) or key
    offset = dt.utcoffset()
    if isinstance(tzinfo, datetime.timezone):
        return UTC_NAME if offset == datetime.timedelta(0) else _format_offset(offset)
    if offset == datetime.timedelta(0) and dt.tzname() in ("UTC", "Z", "GMT"):
        return UTC_NAME
    return None


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()
