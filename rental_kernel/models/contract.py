"""
RentalContractModel -- persisted rental contract.

Contract terms (rent, dates, due day) are frozen once the contract's rent
schedule exists; ``db/immutability.py`` rejects later changes to them.
Status stays mutable.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase, UUIDString
from rental_kernel.db.types import Money
from rental_kernel.domain.types import ContractStatus, RentalContract

if TYPE_CHECKING:
    from rental_kernel.models.obligation import RentObligationModel


# Fields that may not change once obligations reference the contract
CONTRACT_TERM_FIELDS = (
    "property_id",
    "tenant_id",
    "monthly_rent",
    "start_date",
    "end_date",
    "due_day",
)


class RentalContractModel(TrackedBase):
    __tablename__ = "rental_contracts"

    __table_args__ = (
        Index("ix_rental_contracts_status_end", "status", "end_date"),
        Index("ix_rental_contracts_property", "property_id"),
    )

    property_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    monthly_rent: Mapped[Money] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ContractStatus.ACTIVE.value,
    )

    obligations: Mapped[list["RentObligationModel"]] = relationship(
        "RentObligationModel",
        back_populates="contract",
        order_by="RentObligationModel.reference_month",
    )

    def to_dto(self) -> RentalContract:
        return RentalContract(
            contract_id=self.id,
            property_id=self.property_id,
            tenant_id=self.tenant_id,
            monthly_rent=Decimal(self.monthly_rent),
            start_date=self.start_date,
            end_date=self.end_date,
            due_day=self.due_day,
            status=ContractStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto: RentalContract) -> RentalContractModel:
        model = cls(
            property_id=dto.property_id,
            tenant_id=dto.tenant_id,
            monthly_rent=dto.monthly_rent,
            start_date=dto.start_date,
            end_date=dto.end_date,
            due_day=dto.due_day,
            status=dto.status.value,
        )
        if dto.contract_id is not None:
            model.id = dto.contract_id
        return model

    def __repr__(self) -> str:
        return f"<RentalContract {self.id} {self.status} due_day={self.due_day}>"
