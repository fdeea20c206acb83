"""
AuditLogService -- append-only trail of batch operations.

Contract:
    ``record()`` stamps an entry with the injected clock and appends it.
    ``last_entry()`` backs the coordinator's idempotency check.
    ``purge_older_than()`` is the only way entries disappear.

Invariants enforced:
    - Entries are never updated.
    - Detail payloads are made JSON-safe (Decimal, UUID, dates, enums
      become strings) before they reach storage.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import ValidationError
from rental_kernel.logging_config import get_logger
from rental_batch.domain.types import (
    AuditCategory,
    AuditLogEntry,
    AuditLogPage,
    AuditOutcome,
)
from rental_batch.ports import RentalPersistence

logger = get_logger("batch.audit_log")


def to_json_safe(value: Any) -> Any:
    """Recursively turn a detail payload into JSON-serializable values."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AuditLogService:
    def __init__(self, persistence: RentalPersistence, clock: Clock | None = None):
        self._persistence = persistence
        self._clock = clock or SystemClock()

    def record(
        self,
        operation: str,
        category: AuditCategory,
        outcome: AuditOutcome,
        message: str,
        details: dict[str, Any] | None = None,
        duration_ms: int = 0,
        affected_records: int = 0,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            operation=operation,
            category=category,
            outcome=outcome,
            message=message,
            timestamp=self._clock.now(),
            details=to_json_safe(details or {}),
            duration_ms=duration_ms,
            affected_records=affected_records,
        )
        stored = self._persistence.append_audit_log(entry)

        logger.info(
            "audit_entry_recorded",
            extra={
                "audit_operation": operation,
                "category": category.value,
                "outcome": outcome.value,
                "affected_records": affected_records,
            },
        )
        return stored

    def last_entry(self, operation: str) -> AuditLogEntry | None:
        return self._persistence.query_last_audit_log(operation)

    def purge_older_than(self, days: int) -> int:
        """Remove entries older than ``days`` days; returns rows removed."""
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ValidationError("days", "must be a non-negative integer")
        cutoff = self._clock.now() - timedelta(days=days)
        return self._persistence.purge_audit_logs_older_than(cutoff)

    def search(
        self,
        category: AuditCategory | None = None,
        outcome: AuditOutcome | None = None,
        operation_contains: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditLogPage:
        """Filtered, paginated entries, newest first."""
        if start is not None and end is not None and start > end:
            raise ValidationError("start", "must not be after end")
        return self._persistence.search_audit_logs(
            category=category,
            outcome=outcome,
            operation_contains=operation_contains,
            start=start,
            end=end,
            page=page,
            limit=limit,
        )
