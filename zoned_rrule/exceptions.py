"""Custom exception hierarchy for recurrence rule handling.

Validation failures, unbounded queries and exhausted iteration budgets get
distinct types so callers can tell "the rule is malformed" apart from "the
search ran out of budget".
"""


class RRuleError(Exception):
    """Base exception for all zoned_rrule errors.

    Catch this to handle every failure raised by the package in one place.
    """


class ValidationError(RRuleError):
    """Rule definition failed validation.

    Raised when:
    - FREQ is missing or not a known frequency
    - INTERVAL is zero or negative
    - DTSTART or UNTIL is not a timezone-aware datetime
    - BYSETPOS contains 0
    - The requested time zone cannot be resolved

    Raised synchronously at construction, never recovered internally.
    """


class RRuleParseError(ValidationError):
    """RFC 5545 rule text could not be parsed.

    Raised when:
    - A BYDAY list is empty or holds an unknown weekday token
    - A numeric part such as COUNT or BYMONTH is not an integer
    - UNTIL or a DTSTART/RDATE/EXDATE value is malformed
    - UNTIL is not expressed in UTC while DTSTART carries a TZID
    """


class UnboundedQueryError(RRuleError):
    """all() was called on a rule with no COUNT, no UNTIL and no iterator.

    Raised before any generation work starts.
    """


class IterationLimitExceeded(RRuleError):
    """Generation exceeded the configured iteration budget.

    Attributes:
        limit: The max_iterations value that was exceeded
        operation: Name of the public call that ran out of budget
    """

    def __init__(self, limit: int, operation: str = "all()"):
        self.limit = limit
        self.operation = operation
        super().__init__(f"Maximum iterations ({limit}) exceeded in {operation}")
