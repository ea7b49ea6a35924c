"""Loading of user configuration from the JSON config file."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path

from .constants import (
    ACTIVITY_LOG_LIMIT,
    AUTO_CONTINUE_LIMIT,
    CONFIG_PATH,
    DISCOVERY_PAGE_SIZE,
    MAX_RECORDS_PER_SOURCE,
    RECENT_ACTIVITY_DAYS,
    STORE_DB_PATH,
)
from .errors import ValidationError
from .scorer import ScoringPolicy

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AuditorConfig:
    store_path: Path = STORE_DB_PATH
    max_records_per_source: int = MAX_RECORDS_PER_SOURCE
    discovery_page_size: int = DISCOVERY_PAGE_SIZE
    auto_continue_limit: int = AUTO_CONTINUE_LIMIT
    recent_activity_days: int = RECENT_ACTIVITY_DAYS
    activity_log_limit: int = ACTIVITY_LOG_LIMIT
    delegated_user: str | None = None  # impersonated by the service account
    log_level: str = "WARNING"
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)


def _check_positive_int(name: str, value) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def _parse_scoring(raw) -> ScoringPolicy:
    if not isinstance(raw, dict):
        raise ValidationError("'scoring' must be an object")
    known = {f.name for f in dataclasses.fields(ScoringPolicy)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValidationError(f"Unknown scoring keys: {', '.join(unknown)}")
    values = {key: _check_positive_int(f"scoring.{key}", value) for key, value in raw.items()}
    return ScoringPolicy(**values)


def parse_config(raw: dict) -> AuditorConfig:
    """Validate a decoded config object and build an AuditorConfig."""
    if not isinstance(raw, dict):
        raise ValidationError("Config root must be a JSON object")

    known = {f.name for f in dataclasses.fields(AuditorConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValidationError(f"Unknown config keys: {', '.join(unknown)}")

    config = AuditorConfig()
    for key, value in raw.items():
        if key == "scoring":
            config.scoring = _parse_scoring(value)
        elif key == "store_path":
            config.store_path = Path(value).expanduser()
        elif key == "delegated_user":
            if value is not None and not isinstance(value, str):
                raise ValidationError("delegated_user must be a string")
            config.delegated_user = value
        elif key == "log_level":
            if not isinstance(value, str) or value.upper() not in _LOG_LEVELS:
                raise ValidationError(
                    f"Invalid log level {value!r}. Must be one of: {', '.join(_LOG_LEVELS)}"
                )
            config.log_level = value.upper()
        else:
            setattr(config, key, _check_positive_int(key, value))

    return config


def load_config(path: Path | None = None) -> AuditorConfig:
    """Load the config file, falling back to defaults when it does not exist."""
    path = Path(path) if path is not None else CONFIG_PATH
    if not path.exists():
        return AuditorConfig()
    try:
        raw = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Config file {path} is not valid JSON: {exc}") from exc
    return parse_config(raw)
