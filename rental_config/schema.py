"""
Settings schema (``rental_config.schema``).

Frozen dataclasses describing everything the daily batch reads from its
settings file.  Defaults here are the values used when a key is absent.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_DATABASE_URL = "sqlite:///rental.db"


@dataclass(frozen=True)
class RetentionSettings:
    """How long housekeeping keeps old rows, in days."""

    audit_log_days: int = 90
    read_notification_days: int = 30


@dataclass(frozen=True)
class NotificationSettings:
    enabled: bool = True
    days_before_due: int = 3
    overdue_reminder_interval_days: int = 7
    max_overdue_reminders: int = 3
    days_before_contract_end: int = 30
    send_batch_size: int = 100


@dataclass(frozen=True)
class RentalSettings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
