"""Shared test configuration for zoned_rrule."""

from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from zoned_rrule.config import reset_config

ENV_VARS = (
    "ZONED_RRULE_TEST_TIME",
    "ZONED_RRULE_MAX_ITERATIONS",
    "ZONED_RRULE_DEFAULT_TZ",
    "ZONED_RRULE_LOG_LEVEL",
    "ZONED_RRULE_DEBUG",
    "ZONED_RRULE_CONFIG",
)


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Cross-module and CLI tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any, tmp_path: Any) -> Generator[None, Any, None]:
    """Clear ZONED_RRULE_* variables and the cached config around every test.

    HOME is pointed at an empty directory so a developer's
    ~/.config/zoned_rrule/config.yaml never leaks into results.
    """
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def utc() -> timezone:
    return timezone.utc


@pytest.fixture
def new_york() -> ZoneInfo:
    """Zone used by the RFC 5545 examples."""
    return ZoneInfo("America/New_York")


@pytest.fixture
def london() -> ZoneInfo:
    return ZoneInfo("Europe/London")


@pytest.fixture
def berlin() -> ZoneInfo:
    return ZoneInfo("Europe/Berlin")


@pytest.fixture
def utc_dt() -> Any:
    """Factory for UTC datetimes: utc_dt(2025, 1, 1, 9)."""

    def _make(*args: int) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)

    return _make
