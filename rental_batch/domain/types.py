"""
rental_batch.domain.types -- Pure frozen dataclasses for the daily batch.

ZERO I/O.  Frozen dataclasses with ``str`` enum status fields and tuples
for immutable collections.

Invariants enforced:
    - AuditLogEntry is immutable once built; persistence only appends it.
    - ObligationUpdate never carries fields a batch run may not touch
      (contract terms, paid amounts).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

from rental_kernel.domain.types import ObligationStatus


# =============================================================================
# Operation names
# =============================================================================

OP_BATCH_START = "daily-batch-start"
OP_DUE_PROCESSING = "due-obligation-processing"
OP_NOTIFICATION_DISPATCH = "notification-dispatch"
OP_RETENTION_CLEANUP = "retention-cleanup"
OP_BATCH_COMPLETE = "daily-batch-complete"
OP_BATCH_CRITICAL = "daily-batch-critical-error"
OP_OBLIGATION_UPDATE = "obligation-update"


# =============================================================================
# Status enums
# =============================================================================


class AuditCategory(str, Enum):
    DUE_DATE_PROCESSING = "due-date-processing"
    STATUS_UPDATE = "status-update"
    NOTIFICATION_DISPATCH = "notification-dispatch"
    INTEREST_CALCULATION = "interest-calculation"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    PARTIAL = "partial"


class NotificationKind(str, Enum):
    UPCOMING_DUE = "upcoming_due"
    OVERDUE_PAYMENT = "overdue_payment"
    CONTRACT_ENDING = "contract_ending"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    PENDING = "pending"  # Created, not yet delivered
    SENT = "sent"
    READ = "read"  # Eligible for retention purge
    CANCELLED = "cancelled"


# =============================================================================
# Audit log
# =============================================================================


@dataclass(frozen=True)
class AuditLogEntry:
    """One operation performed by the engine.

    ``entry_id`` is None until the entry has been appended.
    """

    operation: str
    category: AuditCategory
    outcome: AuditOutcome
    message: str
    timestamp: datetime
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0
    affected_records: int = 0
    entry_id: UUID | None = None


@dataclass(frozen=True)
class AuditLogPage:
    """A page of audit entries, newest first, with the unpaged total."""

    entries: tuple[AuditLogEntry, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


# =============================================================================
# Due-obligation processing
# =============================================================================


@dataclass(frozen=True)
class ObligationUpdate:
    """Fields a batch run may write back onto an obligation."""

    accrued_interest: Decimal
    accrued_penalty: Decimal
    status: ObligationStatus


@dataclass(frozen=True)
class ObligationProcessed:
    """An obligation recomputed and written back."""

    obligation_id: UUID
    previous_status: ObligationStatus
    new_status: ObligationStatus
    accrued_interest: Decimal
    accrued_penalty: Decimal

    @property
    def became_overdue(self) -> bool:
        return (
            self.previous_status != ObligationStatus.OVERDUE
            and self.new_status == ObligationStatus.OVERDUE
        )


@dataclass(frozen=True)
class ObligationFailure:
    """An obligation whose processing raised; its changes were rolled back."""

    obligation_id: UUID | None
    error_code: str
    message: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "obligation_id": str(self.obligation_id) if self.obligation_id else None,
            "error_code": self.error_code,
            "message": self.message,
        }


ObligationOutcome = Union[ObligationProcessed, ObligationFailure]


@dataclass(frozen=True)
class DueProcessingResult:
    """Aggregate of one ``process_due_obligations`` call."""

    processed: int
    became_overdue: int
    errors: tuple[ObligationFailure, ...] = ()
    outcomes: tuple[ObligationOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: list[ObligationOutcome]) -> DueProcessingResult:
        processed = [o for o in outcomes if isinstance(o, ObligationProcessed)]
        failures = tuple(o for o in outcomes if isinstance(o, ObligationFailure))
        return cls(
            processed=len(processed),
            became_overdue=sum(1 for o in processed if o.became_overdue),
            errors=failures,
            outcomes=tuple(outcomes),
        )


# =============================================================================
# Notifications
# =============================================================================


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority
    status: NotificationStatus
    created_at: datetime
    contract_id: UUID | None = None
    obligation_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime | None = None
    read_at: datetime | None = None
    notification_id: UUID | None = None


@dataclass(frozen=True)
class NotificationDispatchResult:
    created: int = 0
    sent: int = 0
    details: dict[str, int] = field(default_factory=dict)
    errors: tuple[str, ...] = ()

    @property
    def processed(self) -> int:
        return self.created + self.sent


# =============================================================================
# Run report
# =============================================================================


@dataclass(frozen=True)
class RetentionResult:
    audit_entries_purged: int = 0
    notifications_purged: int = 0
    error: str | None = None


@dataclass(frozen=True)
class BatchRunReport:
    """Outcome of one ``run_daily_batch`` call.  Built fresh per run."""

    as_of_date: date
    obligations_processed: int = 0
    obligations_became_overdue: int = 0
    notifications_processed: int = 0
    obligation_errors: tuple[ObligationFailure, ...] = ()
    audit_entries: tuple[AuditLogEntry, ...] = ()
    total_duration_ms: int = 0
    overall_success: bool = False
    critical_errors: tuple[str, ...] = ()
    already_run: bool = False
    last_run_at: datetime | None = None
    notification_errors: tuple[str, ...] = ()
    retention: RetentionResult | None = None

    def summary(self) -> dict[str, Any]:
        """JSON-friendly view of the report."""
        return {
            "as_of_date": self.as_of_date.isoformat(),
            "already_run": self.already_run,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "overall_success": self.overall_success,
            "obligations_processed": self.obligations_processed,
            "obligations_became_overdue": self.obligations_became_overdue,
            "notifications_processed": self.notifications_processed,
            "obligation_errors": [e.as_dict() for e in self.obligation_errors],
            "notification_errors": list(self.notification_errors),
            "critical_errors": list(self.critical_errors),
            "audit_entries": len(self.audit_entries),
            "total_duration_ms": self.total_duration_ms,
        }


@dataclass(frozen=True)
class LastRunStatistics:
    """What the last completed run reported, read back from its audit entry."""

    has_run: bool
    last_run_at: datetime | None = None
    as_of_date: date | None = None
    overall_success: bool | None = None
    obligations_processed: int = 0
    obligations_became_overdue: int = 0
    notifications_processed: int = 0
    error_count: int = 0
    duration_ms: int = 0
