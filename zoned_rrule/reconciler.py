"""RDATE/EXDATE reconciliation applied after raw rule generation."""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from .zoned import instant

logger = logging.getLogger(__name__)


def raw_count_bound(count: Optional[int], r_dates: Sequence[datetime]) -> Optional[int]:
    """How many raw rule occurrences to generate before merging.

    Each RDATE can displace at most one rule occurrence from the final COUNT,
    so the raw phase runs ``len(r_dates)`` past COUNT.
    """
    if count is None:
        return None
    return count + len(r_dates)


def excluded_instants(ex_dates: Iterable[datetime]) -> set[datetime]:
    return {instant(value) for value in ex_dates}


def is_excluded(candidate: datetime, ex_dates: Iterable[datetime]) -> bool:
    """True when ``candidate`` falls exactly on an EXDATE instant."""
    return instant(candidate) in excluded_instants(ex_dates)


def merge_occurrences(occurrences: Iterable[datetime], r_dates: Iterable[datetime]) -> list[datetime]:
    """Union of rule occurrences and RDATEs, sorted by instant, one entry per instant.

    When an RDATE coincides with a rule occurrence the rule's value is kept.
    """
    by_instant: dict[datetime, datetime] = {}
    for value in occurrences:
        by_instant.setdefault(instant(value), value)
    for value in r_dates:
        by_instant.setdefault(instant(value), value)
    return [by_instant[key] for key in sorted(by_instant)]


def remove_exdates(occurrences: Iterable[datetime], ex_dates: Iterable[datetime]) -> list[datetime]:
    excluded = excluded_instants(ex_dates)
    if not excluded:
        return list(occurrences)
    return [value for value in occurrences if instant(value) not in excluded]


def reconcile(
    raw: Sequence[datetime],
    r_dates: Sequence[datetime],
    ex_dates: Sequence[datetime],
    count: Optional[int] = None,
) -> list[datetime]:
    """Merge RDATEs, drop EXDATEs, then apply the final COUNT trim.

    Args:
        raw: Rule occurrences in ascending order
        r_dates: Extra instants to include
        ex_dates: Instants to exclude
        count: COUNT of the rule, applied to the merged result

    Returns:
        Final occurrence list in ascending instant order
    """
    merged = merge_occurrences(raw, r_dates)
    result = remove_exdates(merged, ex_dates)
    if count is not None and len(result) > count:
        result = result[:count]
    logger.debug(
        "Reconciled %d raw + %d rdate - %d exdate -> %d occurrences",
        len(raw),
        len(r_dates),
        len(ex_dates),
        len(result),
    )
    return result
