"""
Central logging configuration for zoned_rrule.

The library itself never installs handlers; the CLI (or an embedding
application) calls ``configure_logging`` once at startup.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

# HH:MM:SS  LEVEL   logger.name: message
LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

PACKAGE_MODULES = [
    "zoned_rrule",
    "zoned_rrule.config",
    "zoned_rrule.generators",
    "zoned_rrule.models",
    "zoned_rrule.reconciler",
    "zoned_rrule.rrule",
    "zoned_rrule.rule_parser",
    "zoned_rrule.timezone_utils",
]

_TRUTHY = ("1", "true", "yes", "on")


def _handler_installed(root: logging.Logger) -> bool:
    return any(isinstance(handler.formatter, ColoredFormatter) for handler in root.handlers)


def configure_logging(level_name: Optional[str] = None, debug_mode: bool = False) -> int:
    """
    Install a colorized stderr handler and set zoned_rrule logger levels.

    Calling this more than once adjusts levels but never adds a second handler.

    Args:
        level_name: Level name such as "INFO" or "warning"; defaults to INFO
        debug_mode: Force DEBUG for the zoned_rrule loggers

    Environment Variables:
        ZONED_RRULE_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        ZONED_RRULE_LOG_LEVEL: Override the level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The effective level applied to the package loggers
    """
    env_debug = os.getenv("ZONED_RRULE_DEBUG", "").strip().lower() in _TRUTHY
    env_level = os.getenv("ZONED_RRULE_LOG_LEVEL", "").strip().upper()

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    if env_level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level = getattr(logging, env_level)
    if debug_mode or env_debug:
        level = logging.DEBUG

    root = logging.getLogger()
    if not _handler_installed(root):
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
        root.addHandler(handler)
    root.setLevel(level)

    for module in PACKAGE_MODULES:
        logging.getLogger(module).setLevel(level)

    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))
    return level
