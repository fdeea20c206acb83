"""
AuditLogModel -- append-only record of batch operations.

Rows are never updated and never deleted one by one; the retention purge
removes old rows with a bulk DELETE.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base
from rental_kernel.db.immutability import append_only
from rental_batch.domain.types import AuditCategory, AuditLogEntry, AuditOutcome


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from backends that drop it."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@append_only("AuditLogEntry")
class AuditLogModel(Base):
    __tablename__ = "batch_audit_log"

    __table_args__ = (
        Index("ix_batch_audit_log_operation_ts", "operation", "timestamp"),
        Index("ix_batch_audit_log_ts", "timestamp"),
    )

    operation: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    affected_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dto(self) -> AuditLogEntry:
        return AuditLogEntry(
            entry_id=self.id,
            operation=self.operation,
            category=AuditCategory(self.category),
            outcome=AuditOutcome(self.outcome),
            message=self.message,
            details=self.details or {},
            timestamp=as_utc(self.timestamp),
            duration_ms=self.duration_ms,
            affected_records=self.affected_records,
        )

    @classmethod
    def from_dto(cls, dto: AuditLogEntry) -> AuditLogModel:
        model = cls(
            operation=dto.operation,
            category=dto.category.value,
            outcome=dto.outcome.value,
            message=dto.message,
            details=dto.details or None,
            timestamp=dto.timestamp,
            duration_ms=dto.duration_ms,
            affected_records=dto.affected_records,
        )
        if dto.entry_id is not None:
            model.id = dto.entry_id
        return model
