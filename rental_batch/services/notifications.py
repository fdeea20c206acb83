"""
Notification dispatch for the daily batch.

Contract:
    ``process_notifications(as_of)`` raises notices for rent coming due,
    rent overdue and contracts ending soon, then marks pending notices as
    sent.  Returns a NotificationDispatchResult; a failing step is
    recorded in ``errors`` and the remaining steps still run.

Invariants enforced:
    - At most one upcoming-due notice per obligation and one
      contract-ending notice per contract.
    - Overdue notices per obligation are capped at
      ``max_overdue_reminders`` and spaced at least
      ``overdue_reminder_interval_days`` apart.
    - Each step runs in its own SAVEPOINT.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.types import ContractStatus, ObligationStatus
from rental_kernel.logging_config import get_logger
from rental_kernel.models.contract import RentalContractModel
from rental_kernel.models.obligation import RentObligationModel
from rental_config.schema import NotificationSettings
from rental_batch.domain.types import (
    Notification,
    NotificationDispatchResult,
    NotificationKind,
    NotificationPriority,
    NotificationStatus,
)
from rental_batch.models.notification import NotificationModel

logger = get_logger("batch.notifications")

# Overdue notices escalate to URGENT after this many days late
URGENT_AFTER_DAYS_LATE = 30
# Contract-ending notices escalate to HIGH inside this many days
HIGH_PRIORITY_CONTRACT_DAYS = 7


class NullNotificationDispatcher:
    """Dispatcher that does nothing.  Used when notifications are disabled."""

    def process_notifications(self, as_of: date) -> NotificationDispatchResult:
        return NotificationDispatchResult()


class SqlNotificationDispatcher:
    def __init__(
        self,
        session: Session,
        settings: NotificationSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._settings = settings or NotificationSettings()
        self._clock = clock or SystemClock()

    def process_notifications(self, as_of: date) -> NotificationDispatchResult:
        steps: tuple[tuple[str, Callable[[date], int]], ...] = (
            (NotificationKind.UPCOMING_DUE.value, self._notify_upcoming_due),
            (NotificationKind.OVERDUE_PAYMENT.value, self._notify_overdue),
            (NotificationKind.CONTRACT_ENDING.value, self._notify_contract_ending),
        )

        details: dict[str, int] = {}
        errors: list[str] = []

        for name, step in steps:
            try:
                with self._session.begin_nested():
                    details[name] = step(as_of)
            except Exception as exc:
                logger.warning(
                    "notification_step_failed",
                    exc_info=True,
                    extra={"step": name},
                )
                errors.append(f"{name}: {exc}")

        created = sum(details.values())

        sent = 0
        try:
            with self._session.begin_nested():
                sent = self._send_pending()
        except Exception as exc:
            logger.warning("notification_send_failed", exc_info=True)
            errors.append(f"send: {exc}")
        details["sent"] = sent

        logger.info(
            "notifications_processed",
            extra={
                "as_of": as_of,
                "notifications_created": created,
                "sent": sent,
                "errors": len(errors),
            },
        )
        return NotificationDispatchResult(
            created=created,
            sent=sent,
            details=details,
            errors=tuple(errors),
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _notify_upcoming_due(self, as_of: date) -> int:
        horizon = as_of + timedelta(days=self._settings.days_before_due)
        obligations = self._session.execute(
            select(RentObligationModel)
            .where(
                RentObligationModel.status == ObligationStatus.PENDING.value,
                RentObligationModel.due_date >= as_of,
                RentObligationModel.due_date <= horizon,
            )
            .order_by(RentObligationModel.due_date)
        ).scalars().all()

        created = 0
        for obligation in obligations:
            if self._count_existing(NotificationKind.UPCOMING_DUE, obligation_id=obligation.id):
                continue
            days_left = (obligation.due_date - as_of).days
            self._add(
                kind=NotificationKind.UPCOMING_DUE,
                title="Rent due soon",
                message=(
                    f"Rent of {obligation.amount_due:.2f} for "
                    f"{obligation.reference_month:%Y-%m} is due in {days_left} "
                    f"day(s), on {obligation.due_date.isoformat()}."
                ),
                priority=(
                    NotificationPriority.HIGH if days_left <= 1
                    else NotificationPriority.MEDIUM
                ),
                contract_id=obligation.contract_id,
                obligation_id=obligation.id,
                details={
                    "days_left": days_left,
                    "amount_due": f"{obligation.amount_due:.2f}",
                    "due_date": obligation.due_date.isoformat(),
                },
            )
            created += 1
        return created

    def _notify_overdue(self, as_of: date) -> int:
        obligations = self._session.execute(
            select(RentObligationModel)
            .where(
                RentObligationModel.status == ObligationStatus.OVERDUE.value,
                RentObligationModel.due_date < as_of,
            )
            .order_by(RentObligationModel.due_date)
        ).scalars().all()

        recent_cutoff = self._clock.now() - timedelta(
            days=self._settings.overdue_reminder_interval_days,
        )

        created = 0
        for obligation in obligations:
            sent_so_far = self._count_existing(
                NotificationKind.OVERDUE_PAYMENT, obligation_id=obligation.id,
            )
            if sent_so_far >= self._settings.max_overdue_reminders:
                continue
            if self._count_existing(
                NotificationKind.OVERDUE_PAYMENT,
                obligation_id=obligation.id,
                since=recent_cutoff,
            ):
                continue

            days_late = (as_of - obligation.due_date).days
            total = (
                obligation.amount_due
                + obligation.accrued_interest
                + obligation.accrued_penalty
            )
            self._add(
                kind=NotificationKind.OVERDUE_PAYMENT,
                title="Rent overdue",
                message=(
                    f"Rent for {obligation.reference_month:%Y-%m} is {days_late} "
                    f"day(s) late. Total owed: {total:.2f}."
                ),
                priority=(
                    NotificationPriority.URGENT if days_late > URGENT_AFTER_DAYS_LATE
                    else NotificationPriority.HIGH
                ),
                contract_id=obligation.contract_id,
                obligation_id=obligation.id,
                details={
                    "days_late": days_late,
                    "total_due": f"{total:.2f}",
                    "reminder_number": sent_so_far + 1,
                },
            )
            created += 1
        return created

    def _notify_contract_ending(self, as_of: date) -> int:
        horizon = as_of + timedelta(days=self._settings.days_before_contract_end)
        contracts = self._session.execute(
            select(RentalContractModel)
            .where(
                RentalContractModel.status == ContractStatus.ACTIVE.value,
                RentalContractModel.end_date >= as_of,
                RentalContractModel.end_date <= horizon,
            )
            .order_by(RentalContractModel.end_date)
        ).scalars().all()

        created = 0
        for contract in contracts:
            if self._count_existing(NotificationKind.CONTRACT_ENDING, contract_id=contract.id):
                continue
            days_left = (contract.end_date - as_of).days
            self._add(
                kind=NotificationKind.CONTRACT_ENDING,
                title="Contract ending",
                message=(
                    f"The rental contract ends in {days_left} day(s), "
                    f"on {contract.end_date.isoformat()}."
                ),
                priority=(
                    NotificationPriority.HIGH if days_left <= HIGH_PRIORITY_CONTRACT_DAYS
                    else NotificationPriority.MEDIUM
                ),
                contract_id=contract.id,
                details={
                    "days_left": days_left,
                    "tenant_id": str(contract.tenant_id),
                },
            )
            created += 1
        return created

    def _send_pending(self) -> int:
        pending = self._session.execute(
            select(NotificationModel)
            .where(NotificationModel.status == NotificationStatus.PENDING.value)
            .order_by(NotificationModel.created_at)
            .limit(self._settings.send_batch_size)
        ).scalars().all()

        now = self._clock.now()
        for model in pending:
            model.status = NotificationStatus.SENT.value
            model.sent_at = now
        self._session.flush()
        return len(pending)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _count_existing(
        self,
        kind: NotificationKind,
        obligation_id: UUID | None = None,
        contract_id: UUID | None = None,
        since: datetime | None = None,
    ) -> int:
        stmt = select(func.count(NotificationModel.id)).where(
            NotificationModel.kind == kind.value,
        )
        if obligation_id is not None:
            stmt = stmt.where(NotificationModel.obligation_id == obligation_id)
        if contract_id is not None:
            stmt = stmt.where(NotificationModel.contract_id == contract_id)
        if since is not None:
            stmt = stmt.where(NotificationModel.created_at >= since)
        return self._session.execute(stmt).scalar_one()

    def _add(self, **fields) -> None:
        notification = Notification(
            status=NotificationStatus.PENDING,
            created_at=self._clock.now(),
            **fields,
        )
        self._session.add(NotificationModel.from_dto(notification))
        self._session.flush()
