"""NotificationModel -- notices raised for upcoming, late and ending rent."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base, UUIDString
from rental_batch.domain.types import (
    Notification,
    NotificationKind,
    NotificationPriority,
    NotificationStatus,
)
from rental_batch.models.audit_log import as_utc


class NotificationModel(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_status", "status"),
        Index("ix_notifications_kind_obligation", "kind", "obligation_id"),
        Index("ix_notifications_kind_contract", "kind", "contract_id"),
    )

    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    contract_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("rental_contracts.id"), nullable=True,
    )
    obligation_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("rent_obligations.id"), nullable=True,
    )
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def to_dto(self) -> Notification:
        return Notification(
            notification_id=self.id,
            kind=NotificationKind(self.kind),
            title=self.title,
            message=self.message,
            priority=NotificationPriority(self.priority),
            status=NotificationStatus(self.status),
            contract_id=self.contract_id,
            obligation_id=self.obligation_id,
            details=self.details or {},
            created_at=as_utc(self.created_at),
            sent_at=as_utc(self.sent_at),
            read_at=as_utc(self.read_at),
        )

    @classmethod
    def from_dto(cls, dto: Notification) -> NotificationModel:
        model = cls(
            kind=dto.kind.value,
            title=dto.title,
            message=dto.message,
            priority=dto.priority.value,
            status=dto.status.value,
            contract_id=dto.contract_id,
            obligation_id=dto.obligation_id,
            details=dto.details or None,
            created_at=dto.created_at,
            sent_at=dto.sent_at,
            read_at=dto.read_at,
        )
        if dto.notification_id is not None:
            model.id = dto.notification_id
        return model
