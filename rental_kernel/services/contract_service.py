"""
ContractService -- rental contract onboarding and payment recording.

Responsibility:
    Persists a new contract together with its monthly rent schedule, and
    moves obligations into their terminal states (paid, cancelled).

Architecture position:
    Kernel > Services -- imperative shell around rental_engines.
    Flush-only: never commits or rolls back the caller's session.

Invariants enforced:
    - A contract and its schedule are flushed together; a failing schedule
      leaves nothing behind.
    - PAID and CANCELLED are terminal.  Recording a payment or cancelling
      a terminal obligation raises ObligationStateError.

Failure modes:
    - ValidationError from schedule generation or a non-positive payment.
    - ObligationNotFoundError for an unknown obligation id.
    - ObligationStateError for a transition out of a terminal status.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from rental_kernel.db.types import to_decimal
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.types import ObligationStatus, RentalContract, RentObligation
from rental_kernel.exceptions import (
    ObligationNotFoundError,
    ObligationStateError,
    ValidationError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.models.contract import RentalContractModel
from rental_kernel.models.obligation import RentObligationModel
from rental_engines.calculation import generate_monthly_schedule

logger = get_logger("services.contract")


@dataclass(frozen=True)
class ContractSchedule:
    """A persisted contract and the obligations generated for it."""

    contract: RentalContract
    obligations: tuple[RentObligation, ...]


class ContractService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def create_contract(self, contract: RentalContract) -> ContractSchedule:
        """
        Persist ``contract`` and one pending obligation per month it spans.

        A contract without an id is given a fresh uuid4.
        """
        if contract.contract_id is None:
            contract = replace(contract, contract_id=uuid4())

        schedule = generate_monthly_schedule(contract)

        contract_model = RentalContractModel.from_dto(contract)
        self._session.add(contract_model)
        obligation_models = [RentObligationModel.from_dto(o) for o in schedule]
        self._session.add_all(obligation_models)
        self._session.flush()

        logger.info(
            "contract_created",
            extra={
                "contract_id": str(contract.contract_id),
                "property_id": str(contract.property_id),
                "obligation_count": len(obligation_models),
                "monthly_rent": str(contract.monthly_rent),
            },
        )

        return ContractSchedule(
            contract=contract_model.to_dto(),
            obligations=tuple(m.to_dto() for m in obligation_models),
        )

    def record_payment(
        self,
        obligation_id: UUID,
        amount: Decimal,
        paid_on: date | None = None,
    ) -> RentObligation:
        """Mark an obligation PAID with the amount received."""
        try:
            paid_amount = to_decimal(amount)
        except ValueError:
            raise ValidationError("amount", f"must be a number, got {amount!r}") from None
        if paid_amount <= 0:
            raise ValidationError("amount", "must be greater than zero")

        model = self._load_open(obligation_id, ObligationStatus.PAID)
        model.status = ObligationStatus.PAID.value
        model.paid_amount = paid_amount
        model.paid_on = paid_on or self._clock.today()
        self._session.flush()

        logger.info(
            "obligation_paid",
            extra={
                "obligation_id": str(obligation_id),
                "paid_amount": str(paid_amount),
                "paid_on": model.paid_on.isoformat(),
            },
        )
        return model.to_dto()

    def cancel_obligation(self, obligation_id: UUID) -> RentObligation:
        """Mark an obligation CANCELLED."""
        model = self._load_open(obligation_id, ObligationStatus.CANCELLED)
        model.status = ObligationStatus.CANCELLED.value
        self._session.flush()

        logger.info("obligation_cancelled", extra={"obligation_id": str(obligation_id)})
        return model.to_dto()

    def _load_open(
        self, obligation_id: UUID, requested: ObligationStatus,
    ) -> RentObligationModel:
        model = self._session.get(RentObligationModel, obligation_id)
        if model is None:
            raise ObligationNotFoundError(str(obligation_id))

        current = ObligationStatus(model.status)
        if current.is_terminal:
            raise ObligationStateError(
                str(obligation_id), current.value, requested.value,
            )
        return model
