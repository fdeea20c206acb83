"""
Settings loader (``rental_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into ``rental_config.schema``
dataclasses, then applies environment overrides.

Invariants enforced
-------------------
* Unknown sections are ignored; known keys are type-checked.
* Every invalid value raises ``ConfigurationError`` naming the dotted key.
* ``compute_checksum`` is deterministic for identical settings.

Failure modes
-------------
* Missing file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` wrapping ``yaml.YAMLError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

import yaml

from rental_kernel.exceptions import ConfigurationError
from rental_config.schema import (
    DEFAULT_DATABASE_URL,
    NotificationSettings,
    RentalSettings,
    RetentionSettings,
)

ENV_DATABASE_URL = "RENTAL_DATABASE_URL"
ENV_LOG_LEVEL = "RENTAL_LOG_LEVEL"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: the file is missing, unreadable, not valid
            YAML or not a mapping at the top level.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(str(path), "settings file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return dict(data)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(name, "must be a mapping")
    return section


def _int(section: Mapping[str, Any], prefix: str, key: str, default: int, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{prefix}.{key}", f"must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{prefix}.{key}", f"must be >= {minimum}")
    return value


def _bool(section: Mapping[str, Any], prefix: str, key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{prefix}.{key}", f"must be true or false, got {value!r}")
    return value


def parse_log_level(value: Any, key: str = "logging.level") -> str:
    if not isinstance(value, str) or value.upper() not in _LOG_LEVELS:
        raise ConfigurationError(key, f"must be one of {sorted(_LOG_LEVELS)}")
    return value.upper()


def parse_retention(data: Mapping[str, Any]) -> RetentionSettings:
    section = _section(data, "retention")
    defaults = RetentionSettings()
    return RetentionSettings(
        audit_log_days=_int(
            section, "retention", "audit_log_days", defaults.audit_log_days, 1,
        ),
        read_notification_days=_int(
            section, "retention", "read_notification_days",
            defaults.read_notification_days, 1,
        ),
    )


def parse_notifications(data: Mapping[str, Any]) -> NotificationSettings:
    section = _section(data, "notifications")
    d = NotificationSettings()
    p = "notifications"
    return NotificationSettings(
        enabled=_bool(section, p, "enabled", d.enabled),
        days_before_due=_int(section, p, "days_before_due", d.days_before_due, 0),
        overdue_reminder_interval_days=_int(
            section, p, "overdue_reminder_interval_days",
            d.overdue_reminder_interval_days, 1,
        ),
        max_overdue_reminders=_int(
            section, p, "max_overdue_reminders", d.max_overdue_reminders, 0,
        ),
        days_before_contract_end=_int(
            section, p, "days_before_contract_end", d.days_before_contract_end, 0,
        ),
        send_batch_size=_int(section, p, "send_batch_size", d.send_batch_size, 1),
    )


def parse_settings(data: Mapping[str, Any]) -> RentalSettings:
    """Build RentalSettings from an already-parsed YAML mapping."""
    database = _section(data, "database")
    database_url = database.get("url", DEFAULT_DATABASE_URL)
    if not isinstance(database_url, str) or not database_url:
        raise ConfigurationError("database.url", "must be a non-empty string")

    log_level = parse_log_level(_section(data, "logging").get("level", "INFO"))

    return RentalSettings(
        database_url=database_url,
        log_level=log_level,
        retention=parse_retention(data),
        notifications=parse_notifications(data),
    )


def apply_environment(settings: RentalSettings, environ: Mapping[str, str]) -> RentalSettings:
    """Overlay RENTAL_DATABASE_URL and RENTAL_LOG_LEVEL when set."""
    overrides: dict[str, Any] = {}
    if environ.get(ENV_DATABASE_URL):
        overrides["database_url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        overrides["log_level"] = parse_log_level(environ[ENV_LOG_LEVEL], ENV_LOG_LEVEL)
    if not overrides:
        return settings
    return replace(settings, **overrides)


def compute_checksum(settings: RentalSettings) -> str:
    """Deterministic SHA-256 of the settings, for change detection in logs."""
    canonical = json.dumps(asdict(settings), sort_keys=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

