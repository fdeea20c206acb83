"""
SqlAlchemyPersistence -- RentalPersistence over a SQLAlchemy Session.

Contract:
    Implements ``rental_batch.ports.RentalPersistence``.  Flush-only: the
    caller owns commit and rollback of the surrounding transaction.

Invariants enforced:
    - ``item_boundary()`` is a SAVEPOINT; a failing item rolls back only
      its own writes.
    - Retention purges are bulk DELETE statements, so they bypass the
      append-only listeners on single audit rows.
    - Database errors surface as PersistenceError naming the operation.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_kernel.domain.types import (
    ContractStatus,
    DueObligation,
    FinancialConfig,
    ObligationContext,
    ObligationStatus,
)
from rental_kernel.exceptions import (
    ObligationNotFoundError,
    PersistenceError,
    ValidationError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.models.contract import RentalContractModel
from rental_kernel.models.financial_config import FinancialConfigModel
from rental_kernel.models.obligation import RentObligationModel
from rental_batch.domain.types import (
    AuditCategory,
    AuditLogEntry,
    AuditLogPage,
    AuditOutcome,
    NotificationStatus,
    ObligationUpdate,
)
from rental_batch.models.audit_log import AuditLogModel
from rental_batch.models.notification import NotificationModel

logger = get_logger("batch.persistence")

MAX_PAGE_SIZE = 500


@contextmanager
def _translate_errors(operation: str, record_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise PersistenceError(operation, str(exc), record_id) from exc


class SqlAlchemyPersistence:
    def __init__(self, session: Session):
        self._session = session

    # -------------------------------------------------------------------------
    # Obligations
    # -------------------------------------------------------------------------

    def fetch_due_obligations(self, as_of: date) -> list[DueObligation]:
        stmt = (
            select(RentObligationModel, RentalContractModel)
            .join(
                RentalContractModel,
                RentObligationModel.contract_id == RentalContractModel.id,
            )
            .where(
                RentObligationModel.status == ObligationStatus.PENDING.value,
                RentObligationModel.due_date <= as_of,
            )
            .order_by(RentObligationModel.due_date, RentObligationModel.id)
        )
        with _translate_errors("fetch_due_obligations"):
            rows = self._session.execute(stmt).all()

        return [
            DueObligation(
                obligation=obligation.to_dto(),
                context=ObligationContext(
                    contract_id=contract.id,
                    property_id=contract.property_id,
                    tenant_id=contract.tenant_id,
                    monthly_rent=contract.monthly_rent,
                    due_day=contract.due_day,
                    contract_status=ContractStatus(contract.status),
                ),
            )
            for obligation, contract in rows
        ]

    def update_obligation(self, obligation_id: UUID, update: ObligationUpdate) -> None:
        with _translate_errors("update_obligation", str(obligation_id)):
            model = self._session.get(RentObligationModel, obligation_id)
            if model is None:
                raise ObligationNotFoundError(str(obligation_id))
            model.accrued_interest = update.accrued_interest
            model.accrued_penalty = update.accrued_penalty
            model.status = update.status.value
            self._session.flush()

    # -------------------------------------------------------------------------
    # Financial configuration
    # -------------------------------------------------------------------------

    def fetch_financial_config(self) -> FinancialConfig | None:
        stmt = (
            select(FinancialConfigModel)
            .where(FinancialConfigModel.is_active.is_(True))
            .order_by(FinancialConfigModel.created_at.desc())
            .limit(1)
        )
        with _translate_errors("fetch_financial_config"):
            model = self._session.execute(stmt).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        with _translate_errors("append_audit_log"):
            model = AuditLogModel.from_dto(entry)
            self._session.add(model)
            self._session.flush()
        return model.to_dto()

    def query_last_audit_log(self, operation: str) -> AuditLogEntry | None:
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.operation == operation)
            .order_by(AuditLogModel.timestamp.desc())
            .limit(1)
        )
        with _translate_errors("query_last_audit_log"):
            model = self._session.execute(stmt).scalar_one_or_none()
        return model.to_dto() if model is not None else None

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
        if page < 1:
            raise ValidationError("page", "must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError("limit", f"must be between 1 and {MAX_PAGE_SIZE}")

        stmt = select(AuditLogModel)
        if category is not None:
            stmt = stmt.where(AuditLogModel.category == category.value)
        if outcome is not None:
            stmt = stmt.where(AuditLogModel.outcome == outcome.value)
        if operation_contains:
            stmt = stmt.where(AuditLogModel.operation.contains(operation_contains))
        if start is not None:
            stmt = stmt.where(AuditLogModel.timestamp >= start)
        if end is not None:
            stmt = stmt.where(AuditLogModel.timestamp <= end)

        with _translate_errors("search_audit_logs"):
            total = self._session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar_one()
            models = self._session.execute(
                stmt.order_by(AuditLogModel.timestamp.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()

        return AuditLogPage(
            entries=tuple(m.to_dto() for m in models),
            total=total,
            page=page,
            limit=limit,
        )

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def purge_audit_logs_older_than(self, cutoff: datetime) -> int:
        with _translate_errors("purge_audit_logs_older_than"):
            result = self._session.execute(
                delete(AuditLogModel).where(AuditLogModel.timestamp < cutoff)
                .execution_options(synchronize_session=False)
            )
        purged = result.rowcount or 0
        logger.info(
            "audit_logs_purged",
            extra={"cutoff": cutoff.isoformat(), "purged": purged},
        )
        return purged

    def purge_read_notifications_older_than(self, cutoff: datetime) -> int:
        with _translate_errors("purge_read_notifications_older_than"):
            result = self._session.execute(
                delete(NotificationModel).where(
                    NotificationModel.status == NotificationStatus.READ.value,
                    NotificationModel.created_at < cutoff,
                ).execution_options(synchronize_session=False)
            )
        purged = result.rowcount or 0
        logger.info(
            "read_notifications_purged",
            extra={"cutoff": cutoff.isoformat(), "purged": purged},
        )
        return purged

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    @contextmanager
    def item_boundary(self) -> Iterator[None]:
        savepoint = self._session.begin_nested()
        try:
            yield
        except Exception:
            savepoint.rollback()
            raise
        else:
            savepoint.commit()
