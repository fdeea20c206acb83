"""
FinancialConfigModel -- persisted interest/penalty/commission settings.

The newest active row wins.  Readers fall back to DEFAULT_FINANCIAL_CONFIG
when no row exists.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase
from rental_kernel.db.types import Rate
from rental_kernel.domain.types import FinancialConfig


class FinancialConfigModel(TrackedBase):
    __tablename__ = "financial_config"

    __table_args__ = (
        Index("ix_financial_config_active", "is_active"),
    )

    monthly_interest_rate: Mapped[Rate] = mapped_column(nullable=False)
    penalty_rate: Mapped[Rate] = mapped_column(nullable=False)
    commission_rate: Mapped[Rate] = mapped_column(nullable=False)
    grace_period_days: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> FinancialConfig:
        return FinancialConfig(
            monthly_interest_rate=Decimal(self.monthly_interest_rate),
            penalty_rate=Decimal(self.penalty_rate),
            commission_rate=Decimal(self.commission_rate),
            grace_period_days=int(self.grace_period_days),
        )

    @classmethod
    def from_dto(cls, dto: FinancialConfig) -> FinancialConfigModel:
        return cls(
            monthly_interest_rate=dto.monthly_interest_rate,
            penalty_rate=dto.penalty_rate,
            commission_rate=dto.commission_rate,
            grace_period_days=dto.grace_period_days,
            is_active=True,
        )
