"""
RentObligationModel -- one month's rent owed under a contract.

Invariants enforced:
    - UNIQUE (contract_id, reference_month): exactly one obligation per
      contract per calendar month.
    - Rows are never deleted (db/immutability.py).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString
from rental_kernel.db.types import ZERO, Money
from rental_kernel.domain.types import ObligationStatus, RentObligation

if TYPE_CHECKING:
    from rental_kernel.models.contract import RentalContractModel


class RentObligationModel(TrackedBase):
    __tablename__ = "rent_obligations"

    __table_args__ = (
        UniqueConstraint(
            "contract_id", "reference_month",
            name="uq_rent_obligation_contract_month",
        ),
        Index("ix_rent_obligations_status_due", "status", "due_date"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rental_contracts.id"),
        nullable=False,
    )
    reference_month: Mapped[date] = mapped_column(Date, nullable=False)
    amount_due: Mapped[Money] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    accrued_interest: Mapped[Money] = mapped_column(nullable=False, default=ZERO)
    accrued_penalty: Mapped[Money] = mapped_column(nullable=False, default=ZERO)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ObligationStatus.PENDING.value,
    )
    paid_amount: Mapped[Money | None] = mapped_column(nullable=True)
    paid_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    contract: Mapped["RentalContractModel"] = relationship(
        "RentalContractModel",
        back_populates="obligations",
        foreign_keys=[contract_id],
    )

    def to_dto(self) -> RentObligation:
        return RentObligation(
            obligation_id=self.id,
            contract_id=self.contract_id,
            reference_month=self.reference_month,
            amount_due=Decimal(self.amount_due),
            due_date=self.due_date,
            accrued_interest=Decimal(self.accrued_interest),
            accrued_penalty=Decimal(self.accrued_penalty),
            status=ObligationStatus(self.status),
            paid_amount=(
                Decimal(self.paid_amount) if self.paid_amount is not None else None
            ),
            paid_on=self.paid_on,
        )

    @classmethod
    def from_dto(cls, dto: RentObligation) -> RentObligationModel:
        model = cls(
            contract_id=dto.contract_id,
            reference_month=dto.reference_month,
            amount_due=dto.amount_due,
            due_date=dto.due_date,
            accrued_interest=dto.accrued_interest,
            accrued_penalty=dto.accrued_penalty,
            status=dto.status.value,
            paid_amount=dto.paid_amount,
            paid_on=dto.paid_on,
        )
        if dto.obligation_id is not None:
            model.id = dto.obligation_id
        return model

    def __repr__(self) -> str:
        return (
            f"<RentObligation {self.id} {self.reference_month} {self.status}>"
        )
