"""ORM models for the daily batch: audit log and notifications."""

import rental_kernel.models  # noqa: F401  (notification foreign keys)
from rental_batch.models.audit_log import AuditLogModel
from rental_batch.models.notification import NotificationModel

__all__ = [
    "AuditLogModel",
    "NotificationModel",
]
