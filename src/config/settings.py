"""
Settings for the Clarifi privacy governance engine.

All values come from environment variables with safe defaults so the
engine can start in development without any configuration. Values are
validated on load; invalid values fail fast with ConfigurationError.

Usage:
    from src.config.settings import GovernanceSettings

    settings = GovernanceSettings.from_env()
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

from src.lib.exceptions import ConfigurationError

StorageBackend = Literal["memory", "redis", "sql"]

VALID_BACKENDS: set[str] = {"memory", "redis", "sql"}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class GovernanceSettings:
    """
    Process-wide governance settings.

    Attributes:
        consent_version: Version of the consent text stamped on every record.
        history_limit: Records kept per type in the recent history view.
        audit_records_per_type: Records kept per type in the audit record store.
        audit_log_limit: Events kept in the privacy audit log.
        audit_retention_days: Age after which privacy audit events are dropped.
        purge_history_limit: Purge reports kept in the purge history.
        purge_interval_days: Upper bound between two scheduled purges.
        check_interval_seconds: Retention scheduler timer interval.
        expiry_check_interval_seconds: Consent expiry timer interval.
        max_missed_checks: Skipped background ticks before a check is forced.
        background_purge: Whether timer ticks may purge while the app is in background.
        storage_backend: "memory", "redis" or "sql".
        redis_url: Redis connection URL (redis backend).
        database_url: SQLAlchemy URL (sql backend).
        data_dir: Root of the category-partitioned local data directory.
    """

    consent_version: str = "2.0.0"
    history_limit: int = 50
    audit_records_per_type: int = 100
    audit_log_limit: int = 1000
    audit_retention_days: int = 2555
    purge_history_limit: int = 10
    purge_interval_days: int = 7
    check_interval_seconds: float = 3600.0
    expiry_check_interval_seconds: float = 3600.0
    max_missed_checks: int = 24
    background_purge: bool = False
    storage_backend: StorageBackend = "memory"
    redis_url: str = "redis://localhost:6379/0"
    database_url: str = "sqlite:///clarifi_privacy.db"
    data_dir: str = "clarifi_data"

    def __post_init__(self) -> None:
        for name in (
            "history_limit",
            "audit_records_per_type",
            "audit_log_limit",
            "audit_retention_days",
            "purge_history_limit",
            "purge_interval_days",
            "max_missed_checks",
        ):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be a positive integer")
        for name in ("check_interval_seconds", "expiry_check_interval_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be greater than zero")
        if self.audit_records_per_type < self.history_limit:
            raise ConfigurationError(
                "audit_records_per_type must be at least history_limit "
                f"({self.audit_records_per_type} < {self.history_limit})"
            )
        if self.storage_backend not in VALID_BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend '{self.storage_backend}'. "
                f"Valid: {sorted(VALID_BACKENDS)}"
            )
        if not self.consent_version:
            raise ConfigurationError("consent_version cannot be empty")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GovernanceSettings:
        """
        Load settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Validated GovernanceSettings

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            consent_version=env.get("CLARIFI_CONSENT_VERSION", defaults.consent_version),
            history_limit=_int(env, "CLARIFI_CONSENT_HISTORY_LIMIT", defaults.history_limit),
            audit_records_per_type=_int(env, "CLARIFI_CONSENT_AUDIT_LIMIT", defaults.audit_records_per_type),
            audit_log_limit=_int(env, "CLARIFI_PRIVACY_AUDIT_LIMIT", defaults.audit_log_limit),
            audit_retention_days=_int(
                env, "CLARIFI_PRIVACY_AUDIT_RETENTION_DAYS", defaults.audit_retention_days
            ),
            purge_history_limit=_int(env, "CLARIFI_PURGE_HISTORY_LIMIT", defaults.purge_history_limit),
            purge_interval_days=_int(env, "CLARIFI_PURGE_INTERVAL_DAYS", defaults.purge_interval_days),
            check_interval_seconds=_float(env, "CLARIFI_RETENTION_CHECK_INTERVAL", defaults.check_interval_seconds),
            expiry_check_interval_seconds=_float(
                env, "CLARIFI_EXPIRY_CHECK_INTERVAL", defaults.expiry_check_interval_seconds
            ),
            max_missed_checks=_int(env, "CLARIFI_MAX_MISSED_CHECKS", defaults.max_missed_checks),
            background_purge=_bool(env, "CLARIFI_BACKGROUND_PURGE", defaults.background_purge),
            storage_backend=env.get("CLARIFI_STORAGE_BACKEND", defaults.storage_backend).strip().lower(),  # type: ignore[arg-type]
            redis_url=env.get("REDIS_URL", defaults.redis_url),
            database_url=env.get("CLARIFI_DATABASE_URL", defaults.database_url),
            data_dir=env.get("CLARIFI_DATA_DIR", defaults.data_dir),
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


__all__ = [
    "GovernanceSettings",
    "StorageBackend",
    "VALID_BACKENDS",
]
