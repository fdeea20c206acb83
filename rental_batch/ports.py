"""
rental_batch.ports -- Collaborator protocols consumed by the daily batch.

The processor, audit service and coordinator depend only on these
protocols.  ``rental_batch.services.sql_persistence`` is the SQLAlchemy
implementation; tests substitute in-memory fakes.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from rental_kernel.domain.types import DueObligation, FinancialConfig
from rental_batch.domain.types import (
    AuditCategory,
    AuditLogEntry,
    AuditLogPage,
    AuditOutcome,
    NotificationDispatchResult,
    ObligationUpdate,
)


@runtime_checkable
class RentalPersistence(Protocol):
    """Row storage for obligations, settings, audit entries and notifications."""

    def fetch_due_obligations(self, as_of: date) -> list[DueObligation]:
        """PENDING obligations with due_date <= as_of, joined with their contract."""
        ...

    def update_obligation(self, obligation_id: UUID, update: ObligationUpdate) -> None:
        ...

    def fetch_financial_config(self) -> FinancialConfig | None:
        """The active configuration, or None when none is stored."""
        ...

    def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append ``entry`` and return it with its assigned id."""
        ...

    def query_last_audit_log(self, operation: str) -> AuditLogEntry | None:
        ...

    def search_audit_logs(
        self,
        category: AuditCategory | None = None,
        outcome: AuditOutcome | None = None,
        operation_contains: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditLogPage:
        ...

    def purge_audit_logs_older_than(self, cutoff: datetime) -> int:
        ...

    def purge_read_notifications_older_than(self, cutoff: datetime) -> int:
        ...

    def item_boundary(self) -> AbstractContextManager:
        """A unit of work that is rolled back alone if the block raises."""
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    def process_notifications(self, as_of: date) -> NotificationDispatchResult:
        ...
