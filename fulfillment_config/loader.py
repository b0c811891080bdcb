"""
Settings loader -- YAML file plus environment overrides.

Precedence (highest first):
    1. Environment: DATABASE_URL, RECON_LOG_LEVEL
    2. The YAML file passed in (or defaults.yaml beside this module)
    3. ReconciliationSettings field defaults

Raises:
    ConfigurationError on unknown keys or invalid values.
    FileNotFoundError if an explicit path does not exist.
    yaml.YAMLError propagates for malformed YAML.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import LOG_LEVELS, ReconciliationSettings
from fulfillment_kernel.exceptions import ConfigurationError

ENV_DATABASE_URL = "DATABASE_URL"
ENV_LOG_LEVEL = "RECON_LOG_LEVEL"

_KNOWN_KEYS = frozenset(f.name for f in fields(ReconciliationSettings))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "yes", "1"):
        return True
    if isinstance(value, str) and value.lower() in ("false", "no", "0"):
        return False
    raise ConfigurationError(key, f"expected a boolean, got {value!r}")


def parse_settings(data: Mapping[str, Any]) -> ReconciliationSettings:
    """Validate a raw mapping and build ReconciliationSettings."""
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigurationError(
            ", ".join(sorted(unknown)), "unknown setting"
        )

    database_url = data.get("database_url")
    if not database_url or not isinstance(database_url, str):
        raise ConfigurationError("database_url", "must be a non-empty string")

    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(
            "log_level", f"must be one of {', '.join(LOG_LEVELS)}"
        )

    sample_size = data.get("anomaly_sample_size", 20)
    if isinstance(sample_size, bool) or not isinstance(sample_size, int) or sample_size < 1:
        raise ConfigurationError(
            "anomaly_sample_size", "must be a positive integer"
        )

    return ReconciliationSettings(
        database_url=database_url,
        echo_sql=_as_bool("echo_sql", data.get("echo_sql", False)),
        log_level=log_level,
        anomaly_sample_size=sample_size,
        record_history=_as_bool("record_history", data.get("record_history", True)),
    )


def apply_environment(
    data: Mapping[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Overlay environment overrides onto file values."""
    merged = dict(data)
    if environ.get(ENV_DATABASE_URL):
        merged["database_url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        merged["log_level"] = environ[ENV_LOG_LEVEL]
    return merged
