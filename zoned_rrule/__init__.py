"""zoned_rrule - RFC 5545 recurrence rules evaluated in real time zones.

Occurrences keep their wall-clock time across DST transitions. The package
never configures logging on import; see ``zoned_rrule.rrule_logging``.
"""

__version__ = "0.1.0"

from .exceptions import (
    IterationLimitExceeded,
    RRuleError,
    RRuleParseError,
    UnboundedQueryError,
    ValidationError,
)
from .models import Frequency, RecurrenceRule, WeekdayToken
from .rrule import RRule

__all__ = [
    "Frequency",
    "IterationLimitExceeded",
    "RRule",
    "RRuleError",
    "RRuleParseError",
    "RecurrenceRule",
    "UnboundedQueryError",
    "ValidationError",
    "WeekdayToken",
    "__version__",
]
