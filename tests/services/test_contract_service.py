"""
Tests for ContractService: onboarding a contract with its rent schedule,
recording payments and cancelling obligations.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from rental_kernel.domain.types import ContractStatus, ObligationStatus
from rental_kernel.exceptions import (
    ObligationNotFoundError,
    ObligationStateError,
    ValidationError,
)
from rental_kernel.models.contract import RentalContractModel
from rental_kernel.models.obligation import RentObligationModel


def _count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


class TestCreateContract:
    def test_persists_contract_and_schedule(self, seed_contract, db_session):
        schedule = seed_contract()

        assert schedule.contract.contract_id is not None
        assert schedule.contract.status == ContractStatus.ACTIVE
        assert len(schedule.obligations) == 12
        assert _count(db_session, RentalContractModel) == 1
        assert _count(db_session, RentObligationModel) == 12

    def test_obligations_get_ids(self, seed_contract):
        schedule = seed_contract()

        ids = {o.obligation_id for o in schedule.obligations}
        assert None not in ids
        assert len(ids) == 12

    def test_keeps_supplied_contract_id(self, seed_contract):
        contract_id = uuid4()
        schedule = seed_contract(contract_id=contract_id)

        assert schedule.contract.contract_id == contract_id
        assert all(o.contract_id == contract_id for o in schedule.obligations)

    def test_round_trips_amounts_and_dates(self, seed_contract):
        schedule = seed_contract(
            monthly_rent=Decimal("1234.56"),
            start_date=date(2024, 1, 15),
            end_date=date(2024, 3, 31),
            due_day=31,
        )

        assert schedule.contract.monthly_rent == Decimal("1234.56")
        assert [o.due_date for o in schedule.obligations] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_invalid_contract_leaves_nothing(self, contract_service, make_contract, db_session):
        with pytest.raises(ValidationError) as exc_info:
            contract_service.create_contract(make_contract(monthly_rent=Decimal("0")))

        assert exc_info.value.field == "monthly_rent"
        assert _count(db_session, RentalContractModel) == 0

    def test_logs_creation(self, seed_contract, captured_logs):
        seed_contract()

        created = [r for r in captured_logs() if r["message"] == "contract_created"]
        assert len(created) == 1
        assert created[0]["obligation_count"] == 12


class TestRecordPayment:
    def test_marks_paid(self, seed_contract, contract_service):
        obligation = seed_contract().obligations[0]

        paid = contract_service.record_payment(
            obligation.obligation_id, Decimal("1000.00"), paid_on=date(2026, 1, 9),
        )

        assert paid.status == ObligationStatus.PAID
        assert paid.paid_amount == Decimal("1000.00")
        assert paid.paid_on == date(2026, 1, 9)

    def test_paid_on_defaults_to_clock_date(self, seed_contract, contract_service):
        obligation = seed_contract().obligations[0]

        paid = contract_service.record_payment(obligation.obligation_id, "1000")

        assert paid.paid_on == date(2026, 2, 1)

    def test_overdue_obligation_can_be_paid(self, seed_contract, contract_service, db_session):
        obligation = seed_contract().obligations[0]
        model = db_session.get(RentObligationModel, obligation.obligation_id)
        model.status = ObligationStatus.OVERDUE.value
        db_session.flush()

        paid = contract_service.record_payment(obligation.obligation_id, Decimal("1023.33"))

        assert paid.status == ObligationStatus.PAID

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "abc"])
    def test_invalid_amount_rejected(self, seed_contract, contract_service, amount):
        obligation = seed_contract().obligations[0]

        with pytest.raises(ValidationError) as exc_info:
            contract_service.record_payment(obligation.obligation_id, amount)

        assert exc_info.value.field == "amount"

    def test_unknown_obligation(self, contract_service):
        with pytest.raises(ObligationNotFoundError):
            contract_service.record_payment(uuid4(), Decimal("10"))

    def test_paid_twice_rejected(self, seed_contract, contract_service):
        obligation = seed_contract().obligations[0]
        contract_service.record_payment(obligation.obligation_id, Decimal("1000"))

        with pytest.raises(ObligationStateError) as exc_info:
            contract_service.record_payment(obligation.obligation_id, Decimal("1000"))

        assert exc_info.value.current_status == "paid"


class TestCancelObligation:
    def test_marks_cancelled(self, seed_contract, contract_service):
        obligation = seed_contract().obligations[0]

        cancelled = contract_service.cancel_obligation(obligation.obligation_id)

        assert cancelled.status == ObligationStatus.CANCELLED

    def test_cannot_pay_cancelled(self, seed_contract, contract_service):
        obligation = seed_contract().obligations[0]
        contract_service.cancel_obligation(obligation.obligation_id)

        with pytest.raises(ObligationStateError) as exc_info:
            contract_service.record_payment(obligation.obligation_id, Decimal("1000"))

        assert exc_info.value.requested == "paid"
