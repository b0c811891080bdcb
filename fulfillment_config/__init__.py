"""
fulfillment_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides ``get_active_settings()``, the only place that reads settings
    files or environment variables.  Returns a frozen
    ``ReconciliationSettings``.

Architecture position:
    Configuration -- sits above ``fulfillment_kernel``; the kernel, engines
    and services never import from here.  Only the CLIs do.

Failure modes:
    - ``ConfigurationError`` -- unknown key or invalid value.
    - ``FileNotFoundError`` -- an explicit path that does not exist.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from fulfillment_config.loader import apply_environment, load_yaml_file, parse_settings
from fulfillment_config.schema import ReconciliationSettings
from fulfillment_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ReconciliationSettings:
    """Load settings from YAML, then apply environment overrides.

    Args:
        path: Settings file; defaults to the packaged defaults.yaml.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    data = load_yaml_file(settings_path)
    merged = apply_environment(data, os.environ if environ is None else environ)
    settings = parse_settings(merged)

    _logger.info(
        "settings_loaded",
        extra={
            "path": str(settings_path),
            "log_level": settings.log_level,
            "anomaly_sample_size": settings.anomaly_sample_size,
            "record_history": settings.record_history,
        },
    )
    return settings


__all__ = ["ReconciliationSettings", "get_active_settings", "DEFAULT_SETTINGS_PATH"]
