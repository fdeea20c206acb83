"""
rental_kernel.domain.types -- Pure frozen dataclasses for rental finance.

ZERO I/O.  Follows the DTO conventions used across the codebase: frozen
dataclasses, ``str`` enums for status fields, Decimal for money.

Invariants enforced:
    - FinancialConfig rates and grace period are never negative.
    - ObligationStatus.PAID and ObligationStatus.CANCELLED are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from rental_kernel.db.types import ZERO, to_decimal
from rental_kernel.exceptions import ValidationError


# =============================================================================
# Status enums
# =============================================================================


class ContractStatus(str, Enum):
    """Rental contract lifecycle status."""

    ACTIVE = "active"
    ENDED = "ended"
    SUSPENDED = "suspended"


class ObligationStatus(str, Enum):
    """Monthly rent obligation lifecycle status."""

    PENDING = "pending"  # Generated, not yet late beyond grace
    OVERDUE = "overdue"  # Late beyond grace, charges accrued
    PAID = "paid"  # Terminal
    CANCELLED = "cancelled"  # Terminal

    @property
    def is_terminal(self) -> bool:
        return self in (ObligationStatus.PAID, ObligationStatus.CANCELLED)


# =============================================================================
# Contract and obligation DTOs
# =============================================================================


@dataclass(frozen=True)
class RentalContract:
    """Immutable snapshot of a rental contract.

    Terms (rent, dates, due day) are frozen once its schedule exists; only
    ``status`` may change afterwards.
    """

    contract_id: UUID | None
    property_id: UUID
    tenant_id: UUID
    monthly_rent: Decimal
    start_date: date
    end_date: date
    due_day: int
    status: ContractStatus = ContractStatus.ACTIVE


@dataclass(frozen=True)
class RentObligation:
    """One month's rent owed under a contract.

    Exactly one per (contract_id, reference_month).  ``reference_month`` is
    always the first day of the month.
    """

    obligation_id: UUID | None
    contract_id: UUID
    reference_month: date
    amount_due: Decimal
    due_date: date
    accrued_interest: Decimal = ZERO
    accrued_penalty: Decimal = ZERO
    status: ObligationStatus = ObligationStatus.PENDING
    paid_amount: Decimal | None = None
    paid_on: date | None = None

    @property
    def total_due(self) -> Decimal:
        return self.amount_due + self.accrued_interest + self.accrued_penalty


@dataclass(frozen=True)
class ObligationContext:
    """Contract-side context joined onto a due obligation for audit entries."""

    contract_id: UUID
    property_id: UUID
    tenant_id: UUID
    monthly_rent: Decimal
    due_day: int
    contract_status: ContractStatus


@dataclass(frozen=True)
class DueObligation:
    """A fetched obligation together with its contract context."""

    obligation: RentObligation
    context: ObligationContext | None = None

    def audit_context(self) -> dict[str, Any]:
        if self.context is None:
            return {}
        return {
            "property_id": str(self.context.property_id),
            "tenant_id": str(self.context.tenant_id),
            "due_day": self.context.due_day,
        }


# =============================================================================
# Financial configuration
# =============================================================================


@dataclass(frozen=True)
class FinancialConfig:
    """Rates applied by the daily run.

    Values are coerced to Decimal (grace period to int) and validated on
    construction.

    Raises:
        ValidationError: If any value is negative or not numeric.
    """

    monthly_interest_rate: Decimal
    penalty_rate: Decimal
    commission_rate: Decimal
    grace_period_days: int

    def __post_init__(self) -> None:
        for name in ("monthly_interest_rate", "penalty_rate", "commission_rate"):
            raw = getattr(self, name)
            try:
                value = to_decimal(raw)
            except ValueError:
                raise ValidationError(name, f"must be a number, got {raw!r}") from None
            if value < 0:
                raise ValidationError(name, "must be >= 0")
            object.__setattr__(self, name, value)

        if isinstance(self.grace_period_days, bool) or not isinstance(
            self.grace_period_days, int
        ):
            raise ValidationError("grace_period_days", "must be an integer")
        if self.grace_period_days < 0:
            raise ValidationError("grace_period_days", "must be >= 0")

    def as_dict(self) -> dict[str, Any]:
        return {
            "monthly_interest_rate": str(self.monthly_interest_rate),
            "penalty_rate": str(self.penalty_rate),
            "commission_rate": str(self.commission_rate),
            "grace_period_days": self.grace_period_days,
        }


# 1% a month interest, 2% flat penalty, 10% commission, 5 days grace
DEFAULT_FINANCIAL_CONFIG = FinancialConfig(
    monthly_interest_rate=Decimal("0.01"),
    penalty_rate=Decimal("0.02"),
    commission_rate=Decimal("0.10"),
    grace_period_days=5,
)
