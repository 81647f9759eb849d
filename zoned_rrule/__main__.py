"""Command-line entry for zoned_rrule.

Prints the occurrences of an RFC 5545 rule, one ISO 8601 timestamp per line
(or a JSON list with ``--json``).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

from .config import get_config, load_config, set_config
from .exceptions import IterationLimitExceeded, UnboundedQueryError, ValidationError
from .rrule import RRule
from .rrule_logging import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 2
EXIT_UNBOUNDED = 3
EXIT_ITERATION_LIMIT = 4


def _iso_datetime(value: str) -> datetime:
    """argparse type for ISO 8601 timestamps; naive values are taken as UTC."""
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError) as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the zoned-rrule CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="zoned-rrule",
        description="Expand an RFC 5545 recurrence rule into zoned occurrences",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  zoned-rrule $'DTSTART;TZID=Europe/London:20240330T000000\\nRRULE:FREQ=DAILY;COUNT=3'
  zoned-rrule 'FREQ=WEEKLY;BYDAY=MO,WE' --dtstart 2025-01-06T09:00:00Z --count 4
  echo 'RRULE:FREQ=DAILY' | zoned-rrule - --dtstart 2025-01-01T09:00Z --after 2025-03-01T00:00Z
        """,
    )
    parser.add_argument("rule", metavar="RULE", help="Rule text, or '-' to read it from stdin")

    query = parser.add_mutually_exclusive_group()
    query.add_argument("--count", type=int, metavar="N", help="Print at most N occurrences")
    query.add_argument(
        "--between",
        nargs=2,
        type=_iso_datetime,
        metavar=("AFTER", "BEFORE"),
        help="Print occurrences between two timestamps",
    )
    query.add_argument("--after", type=_iso_datetime, metavar="TS", help="Print the first occurrence after TS")
    query.add_argument("--before", type=_iso_datetime, metavar="TS", help="Print the last occurrence before TS")

    parser.add_argument("--inclusive", action="store_true", help="Treat query bounds as inclusive")
    parser.add_argument("--dtstart", type=_iso_datetime, metavar="TS", help="Anchor when the rule has no DTSTART")
    parser.add_argument("--tz", metavar="ZONE", help="Rule time zone (overrides DTSTART TZID)")
    parser.add_argument("--max-iterations", type=int, metavar="N", help="Step budget for this run")
    parser.add_argument("--json", action="store_true", help="Print a JSON list instead of lines")
    parser.add_argument("--config", metavar="PATH", help="YAML or JSON config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _run_query(rule: RRule, args: argparse.Namespace) -> list[datetime]:
    if args.between:
        after, before = args.between
        return rule.between(after, before, inclusive=args.inclusive)
    if args.after:
        found = rule.next(args.after, inclusive=args.inclusive)
        return [found] if found is not None else []
    if args.before:
        found = rule.previous(args.before, inclusive=args.inclusive)
        return [found] if found is not None else []
    occurrences = rule.all()
    if args.count is not None:
        occurrences = occurrences[: args.count]
    return occurrences


def main(argv: Optional[list[str]] = None) -> int:
    """Run the zoned-rrule CLI.

    Returns:
        Process exit code: 0 on success, 2 for an invalid rule, 3 for an
        unbounded query, 4 when the iteration budget runs out
    """
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        if args.config:
            set_config(load_config(args.config))
        config = get_config()
    except (OSError, ValueError) as exc:
        print(f"error: could not load config: {exc}", file=sys.stderr)
        return EXIT_INVALID

    configure_logging(config.log_level, debug_mode=args.debug)

    text = sys.stdin.read() if args.rule == "-" else args.rule
    text = text.replace("\\n", "\n")

    try:
        rule = RRule.from_string(
            text,
            dtstart=args.dtstart,
            tzid=args.tz,
            count=args.count,
            max_iterations=args.max_iterations,
        )
        occurrences = _run_query(rule, args)
    except ValidationError as exc:
        print(f"error: invalid rule: {exc}", file=sys.stderr)
        return EXIT_INVALID
    except UnboundedQueryError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_UNBOUNDED
    except IterationLimitExceeded as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ITERATION_LIMIT

    logger.debug("Query returned %d occurrences", len(occurrences))
    stamps = [occurrence.isoformat() for occurrence in occurrences]
    if args.json:
        print(json.dumps(stamps))
    else:
        for stamp in stamps:
            print(stamp)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
