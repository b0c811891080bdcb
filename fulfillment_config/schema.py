"""
ReconciliationSettings schema.

The frozen runtime settings for the reconciliation engine and its CLIs.
The loader builds one from YAML plus environment overrides; services never
read settings themselves, they receive the values as constructor arguments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass(frozen=True)
class ReconciliationSettings:
    """Runtime settings.

    Attributes:
        database_url: SQLAlchemy URL (PostgreSQL in production).
        echo_sql: Log every SQL statement.
        log_level: One of DEBUG, INFO, WARNING, ERROR.
        anomaly_sample_size: Ids kept per integrity finding.
        record_history: Append a ProformaStatusChange row per status change.
    """

    database_url: str
    echo_sql: bool = False
    log_level: str = "INFO"
    anomaly_sample_size: int = 20
    record_history: bool = True

    @property
    def log_level_value(self) -> int:
        return LOG_LEVELS[self.log_level]
