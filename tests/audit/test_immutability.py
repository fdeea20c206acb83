"""
ORM immutability enforcement.

Verifies:
- Rent obligations are never deleted
- Contract terms freeze once a schedule exists; status stays mutable
- Batch audit log rows are append-only
- Bulk retention purges still remove audit rows
- Creating an engine registers the listeners
"""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.orm import sessionmaker

from rental_batch.domain.types import AuditCategory, AuditLogEntry, AuditOutcome
from rental_batch.models.audit_log import AuditLogModel
from rental_kernel.db.base import Base
from rental_kernel.db.engine import create_database_engine
from rental_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from rental_kernel.domain.types import ContractStatus
from rental_kernel.exceptions import ImmutabilityViolationError
from rental_kernel.models.contract import RentalContractModel
from rental_kernel.models.obligation import RentObligationModel
from rental_kernel.services.contract_service import ContractService


@contextmanager
def disabled_immutability():
    """Temporarily remove the ORM listeners for tests that tamper on purpose."""
    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


def _audit_row(session, when: datetime) -> AuditLogModel:
    model = AuditLogModel.from_dto(
        AuditLogEntry(
            operation="obligation-update",
            category=AuditCategory.STATUS_UPDATE,
            outcome=AuditOutcome.SUCCESS,
            message="test entry",
            timestamp=when,
        )
    )
    session.add(model)
    session.flush()
    return model


class TestObligationImmutability:
    def test_delete_blocked(self, seed_contract, db_session):
        obligation = seed_contract().obligations[0]
        model = db_session.get(RentObligationModel, obligation.obligation_id)

        db_session.delete(model)
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()

        assert exc_info.value.entity_type == "RentObligation"

    def test_status_update_allowed(self, seed_contract, db_session):
        obligation = seed_contract().obligations[0]
        model = db_session.get(RentObligationModel, obligation.obligation_id)

        model.status = "overdue"
        db_session.flush()

        assert db_session.get(RentObligationModel, obligation.obligation_id).status == "overdue"


class TestContractTermImmutability:
    def test_rent_change_blocked_once_scheduled(self, seed_contract, db_session):
        contract = seed_contract().contract
        model = db_session.get(RentalContractModel, contract.contract_id)

        model.monthly_rent = Decimal("2000.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()

        assert "monthly_rent" in str(exc_info.value)

    def test_due_day_change_blocked_once_scheduled(self, seed_contract, db_session):
        contract = seed_contract().contract
        model = db_session.get(RentalContractModel, contract.contract_id)

        model.due_day = 15
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()

    def test_status_change_allowed(self, seed_contract, db_session):
        contract = seed_contract().contract
        model = db_session.get(RentalContractModel, contract.contract_id)

        model.status = ContractStatus.ENDED.value
        db_session.flush()

        assert db_session.get(RentalContractModel, contract.contract_id).status == "ended"

    def test_terms_editable_without_schedule(self, make_contract, db_session):
        from uuid import uuid4

        model = RentalContractModel.from_dto(make_contract(contract_id=uuid4()))
        db_session.add(model)
        db_session.flush()

        model.monthly_rent = Decimal("1500.00")
        db_session.flush()

        assert model.monthly_rent == Decimal("1500.00")

    def test_violation_logged(self, seed_contract, db_session, captured_logs):
        contract = seed_contract().contract
        model = db_session.get(RentalContractModel, contract.contract_id)

        model.end_date = model.end_date + timedelta(days=30)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()

        blocked = [
            r for r in captured_logs()
            if r["message"] == "immutability_violation_blocked"
        ]
        assert blocked[0]["entity_type"] == "RentalContract"
        assert blocked[0]["attempted_operation"] == "UPDATE"


class TestAuditLogAppendOnly:
    def test_update_blocked(self, db_session, clock):
        model = _audit_row(db_session, clock.now())

        model.message = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()

        assert exc_info.value.entity_type == "AuditLogEntry"

    def test_single_row_delete_blocked(self, db_session, clock):
        model = _audit_row(db_session, clock.now())

        db_session.delete(model)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()

    def test_bulk_purge_allowed(self, db_session, clock):
        _audit_row(db_session, clock.now() - timedelta(days=120))
        _audit_row(db_session, clock.now())

        db_session.execute(
            delete(AuditLogModel)
            .where(AuditLogModel.timestamp < clock.now() - timedelta(days=90))
            .execution_options(synchronize_session=False)
        )

        remaining = db_session.execute(
            select(func.count()).select_from(AuditLogModel)
        ).scalar_one()
        assert remaining == 1

    def test_listeners_can_be_disabled(self, db_session):
        model = _audit_row(db_session, datetime(2026, 1, 1, tzinfo=timezone.utc))

        with disabled_immutability():
            model.message = "tampered"
            db_session.flush()

        assert model.message == "tampered"


class TestRegistration:
    def test_new_engine_enforces_rules_without_explicit_setup(self, make_contract, clock):
        with disabled_immutability():
            engine = create_database_engine("sqlite:///:memory:")
            Base.metadata.create_all(engine)
            session = sessionmaker(bind=engine, expire_on_commit=False)()
            try:
                schedule = ContractService(session, clock=clock).create_contract(
                    make_contract()
                )
                model = session.get(
                    RentObligationModel, schedule.obligations[0].obligation_id,
                )

                session.delete(model)
                with pytest.raises(ImmutabilityViolationError):
                    session.flush()
            finally:
                session.rollback()
                session.close()
                engine.dispose()

    def test_second_registration_keeps_append_only_checks(self, db_session, clock):
        register_immutability_listeners()
        model = _audit_row(db_session, clock.now())

        model.message = "edited"
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
