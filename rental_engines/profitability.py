"""
Module: rental_engines.profitability
Responsibility:
    Gross/net/margin for a set of revenue and expense amounts, and the
    per-property averages (monthly revenue, expenses, occupancy, annual
    ROI) derived from a property's obligations.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - margin_percent is exactly 0 when gross is 0.
    - Every output is rounded to two places with ROUND_HALF_UP.
    - A zero-month period yields all-zero statistics.

Failure modes:
    - ValidationError if an input list is not a sequence, or contains a
      negative, non-finite or non-numeric entry.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from rental_kernel.db.types import ZERO, round_money, to_decimal
from rental_kernel.domain.types import ObligationStatus, RentObligation
from rental_kernel.exceptions import ValidationError
from rental_engines.tracer import traced_engine

ZERO_MONEY = Decimal("0.00")
HUNDRED = Decimal(100)
MONTHS_PER_YEAR = Decimal(12)

# Property value estimated as 100 months of average revenue
ESTIMATED_VALUE_REVENUE_MULTIPLE = Decimal(100)


@dataclass(frozen=True)
class ProfitabilityResult:
    gross: Decimal
    net: Decimal
    margin_percent: Decimal


@dataclass(frozen=True)
class ProfitabilityStats:
    """Monthly averages for one property over ``period_months``."""

    property_id: UUID
    period_months: int
    monthly_revenue_avg: Decimal
    monthly_expense_avg: Decimal
    net_profit_avg: Decimal
    occupancy_rate: Decimal
    annual_roi: Decimal


def _require_amounts(field: str, values: Any) -> list[Decimal]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise ValidationError(field, "must be a list of amounts")

    amounts: list[Decimal] = []
    for index, raw in enumerate(values):
        try:
            amount = to_decimal(raw)
        except ValueError:
            raise ValidationError(
                f"{field}[{index}]", f"must be a number, got {raw!r}"
            ) from None
        if not amount.is_finite():
            raise ValidationError(f"{field}[{index}]", "must be finite")
        if amount < 0:
            raise ValidationError(f"{field}[{index}]", "cannot be negative")
        amounts.append(amount)
    return amounts


@traced_engine("profitability", "1.0", fingerprint_fields=("revenues", "expenses"))
def calculate_profitability(
    revenues: Sequence[Decimal | int | float],
    expenses: Sequence[Decimal | int | float],
) -> ProfitabilityResult:
    """
    Gross revenue, net profit and net margin.

    Net may be negative.  ``margin_percent = net / gross * 100``.

    Raises:
        ValidationError: Either input is not a list of non-negative numbers.
    """
    revenue_amounts = _require_amounts("revenues", revenues)
    expense_amounts = _require_amounts("expenses", expenses)

    gross = sum(revenue_amounts, ZERO)
    net = gross - sum(expense_amounts, ZERO)
    margin = net / gross * HUNDRED if gross != 0 else ZERO

    return ProfitabilityResult(
        gross=round_money(gross),
        net=round_money(net),
        margin_percent=round_money(margin),
    )


@traced_engine(
    "profitability_stats",
    "1.0",
    fingerprint_fields=("property_id", "period_months"),
)
def compute_profitability_stats(
    property_id: UUID,
    obligations: Sequence[RentObligation],
    expenses: Sequence[Decimal | int | float],
    period_months: int = 12,
) -> ProfitabilityStats:
    """
    Averages over a period of ``period_months`` months.

    Revenue counts the paid amount of PAID obligations only.  Occupancy is
    the share of months with a paid obligation.  Annual ROI measures
    annualized net profit against a property value estimated from revenue;
    it is 0 when there is no revenue.
    """
    if isinstance(period_months, bool) or not isinstance(period_months, int):
        raise ValidationError("period_months", "must be an integer")
    if period_months < 0:
        raise ValidationError("period_months", "cannot be negative")

    expense_amounts = _require_amounts("expenses", expenses)

    if period_months == 0:
        return ProfitabilityStats(
            property_id=property_id,
            period_months=0,
            monthly_revenue_avg=ZERO_MONEY,
            monthly_expense_avg=ZERO_MONEY,
            net_profit_avg=ZERO_MONEY,
            occupancy_rate=ZERO_MONEY,
            annual_roi=ZERO_MONEY,
        )

    paid = [o for o in obligations if o.status == ObligationStatus.PAID]
    months = Decimal(period_months)

    revenue_avg = sum((o.paid_amount or ZERO for o in paid), ZERO) / months
    expense_avg = sum(expense_amounts, ZERO) / months
    net_avg = revenue_avg - expense_avg

    paid_months = {o.reference_month for o in paid}
    occupancy = Decimal(len(paid_months)) / months * HUNDRED

    estimated_value = revenue_avg * ESTIMATED_VALUE_REVENUE_MULTIPLE
    if estimated_value > 0:
        roi = net_avg * MONTHS_PER_YEAR / estimated_value * HUNDRED
    else:
        roi = ZERO

    return ProfitabilityStats(
        property_id=property_id,
        period_months=period_months,
        monthly_revenue_avg=round_money(revenue_avg),
        monthly_expense_avg=round_money(expense_avg),
        net_profit_avg=round_money(net_avg),
        occupancy_rate=round_money(occupancy),
        annual_roi=round_money(roi),
    )
