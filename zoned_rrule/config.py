"""zoned_rrule.config

Engine configuration.

- Reads YAML (PyYAML) or JSON, chosen by file suffix.
- Environment variables override file values.
- ``get_config()`` caches the loaded config for the process; ``reset_config()``
  clears the cache.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import DEFAULT_MAX_ITERATIONS

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ZONED_RRULE_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/zoned_rrule/config.yaml")

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class EngineConfig:
    """Typed configuration for the occurrence engine.

    Fields:
        max_iterations: default step budget for rules that do not set one
        default_tzid: zone used when neither the caller nor DTSTART names one
        log_level: logging level name used by the CLI
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    default_tzid: str = "UTC"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EngineConfig:
        """Create EngineConfig from a plain mapping, applying defaults.

        Numeric-like values are coerced to int and ``max_iterations`` is
        clamped to at least 1; every coercion is logged as a warning.
        """
        if data is None:
            data = {}

        raw_max = data.get("max_iterations", DEFAULT_MAX_ITERATIONS)
        try:
            max_iterations = int(raw_max)
        except (TypeError, ValueError):
            logger.warning(
                "Config max_iterations=%r is not an int; using default %d", raw_max, DEFAULT_MAX_ITERATIONS
            )
            max_iterations = DEFAULT_MAX_ITERATIONS
        if max_iterations < 1:
            logger.warning("max_iterations %d below minimum; coercing to 1", max_iterations)
            max_iterations = 1

        default_tzid = data.get("default_tzid", "UTC")
        if not isinstance(default_tzid, str) or not default_tzid.strip():
            logger.warning("Config default_tzid=%r is not a zone name; using UTC", default_tzid)
            default_tzid = "UTC"

        log_level = str(data.get("log_level") or "INFO").upper()
        if log_level not in _VALID_LOG_LEVELS:
            logger.warning("Config log_level=%r is not a level name; using INFO", log_level)
            log_level = "INFO"

        return cls(max_iterations=max_iterations, default_tzid=default_tzid.strip(), log_level=log_level)

    def with_env_overrides(self, environ: dict[str, str] | None = None) -> EngineConfig:
        """Return a copy with ``ZONED_RRULE_*`` environment values applied."""
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {
            "max_iterations": self.max_iterations,
            "default_tzid": self.default_tzid,
            "log_level": self.log_level,
        }
        if env.get("ZONED_RRULE_MAX_ITERATIONS"):
            data["max_iterations"] = env["ZONED_RRULE_MAX_ITERATIONS"]
        if env.get("ZONED_RRULE_DEFAULT_TZ"):
            data["default_tzid"] = env["ZONED_RRULE_DEFAULT_TZ"]
        if env.get("ZONED_RRULE_LOG_LEVEL"):
            data["log_level"] = env["ZONED_RRULE_LOG_LEVEL"]
        return EngineConfig.from_dict(data)


def _load_yaml_or_json(path: Path) -> Any:
    """Load a mapping from a YAML or JSON file.

    ``.json`` files go through the json module; anything else is read as YAML.
    PyYAML is imported lazily to keep package import cheap.
    """
    text = path.read_text()
    if path.suffix.lower() == ".json":
        return json.loads(text)

    import yaml  # noqa: PLC0415

    loaded = yaml.safe_load(text)
    # safe_load returns None for empty files
    if loaded is None:
        return {}
    return loaded


def _resolve_path(path: str | None) -> Path | None:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def load_config(path: str | None = None) -> EngineConfig:
    """Load configuration from a YAML/JSON file and apply environment overrides.

    Args:
        path: Optional config file path. Falls back to ``$ZONED_RRULE_CONFIG``,
              then ``~/.config/zoned_rrule/config.yaml`` when it exists.

    Returns:
        EngineConfig with values from file (or defaults) and environment.

    Raises:
        ValueError: If the file exists but its top level is not a mapping
    """
    p = _resolve_path(path)
    if p is None or not p.exists():
        if p is not None:
            logger.info("Config file %s not found; using defaults", p)
        return EngineConfig().with_env_overrides()

    logger.debug("Loading config from %s", p)
    raw = _load_yaml_or_json(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = EngineConfig.from_dict(raw).with_env_overrides()
    logger.debug("Configuration values: %s", cfg)
    return cfg


_config: EngineConfig | None = None


def get_config() -> EngineConfig:
    """Return the process-wide config, loading it on first use."""
    global _config  # noqa: PLW0603
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: EngineConfig) -> None:
    """Install ``config`` as the process-wide config (used by the CLI ``--config``)."""
    global _config  # noqa: PLW0603
    _config = config


def reset_config() -> None:
    global _config  # noqa: PLW0603
    _config = None
