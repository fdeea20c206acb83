"""
Module: rental_engines.calculation
Responsibility:
    Late-fee accrual, monthly rent schedule generation, obligation
    recomputation and the calendar helpers they share.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rental_kernel.domain, rental_kernel.db.types and
    rental_kernel.exceptions.

Invariants enforced:
    - Purity: no clock access, no I/O.  The run date is always an argument.
    - Decimal-only arithmetic.  Interest and penalty are each rounded to two
      places before they are summed into the total.
    - Grace period fully waives accrual: ``days_late <= grace`` yields zero
      interest and zero penalty.
    - Due dates never exceed the last day of their month.
    - PAID and CANCELLED obligations are returned untouched; OVERDUE never
      goes back to PENDING.

Failure modes:
    - ValidationError naming the offending field for any out-of-range input.
      Never caught here.

Usage:
    from rental_engines.calculation import calculate_interest_and_penalty

    result = calculate_interest_and_penalty(
        amount_due=Decimal("1000"),
        days_late=15,
        monthly_interest_rate=Decimal("0.01"),
        penalty_rate=Decimal("0.02"),
        grace_period_days=5,
    )
    # InterestPenaltyResult(interest=Decimal("3.33"), penalty=Decimal("20.00"),
    #                       total=Decimal("1023.33"))
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from rental_kernel.db.types import round_money, to_decimal
from rental_kernel.domain.types import (
    FinancialConfig,
    ObligationStatus,
    RentalContract,
    RentObligation,
)
from rental_kernel.exceptions import ValidationError
from rental_kernel.logging_config import get_logger
from rental_engines.tracer import traced_engine

logger = get_logger("engines.calculation")

# Monthly interest is prorated over a 30-day commercial month
DAYS_PER_MONTH = Decimal(30)

ZERO_MONEY = Decimal("0.00")


@dataclass(frozen=True)
class InterestPenaltyResult:
    """Interest, penalty and total owed for one late obligation."""

    interest: Decimal
    penalty: Decimal
    total: Decimal


# =============================================================================
# Input coercion
# =============================================================================


def _require_decimal(field: str, value: Any) -> Decimal:
    try:
        result = to_decimal(value)
    except ValueError:
        raise ValidationError(field, f"must be a number, got {value!r}") from None
    if not result.is_finite():
        raise ValidationError(field, "must be finite")
    return result


def _require_int(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"must be an integer, got {value!r}")
    return value


def _as_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


# =============================================================================
# Calendar helpers
# =============================================================================


def days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end`` (negative when end is earlier)."""
    return (_as_date(end) - _as_date(start)).days


def clamped_due_date(year: int, month: int, due_day: int) -> date:
    """The due day in the given month, clamped to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def _next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def month_span(start: date, end: date) -> Iterator[date]:
    """Yield the first day of every calendar month from start's to end's."""
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield date(year, month, 1)
        year, month = _next_month(year, month)


def is_within_contract(day: date, contract: RentalContract) -> bool:
    """True if ``day`` falls inside the contract's start/end dates inclusive."""
    day = _as_date(day)
    return contract.start_date <= day <= contract.end_date


def next_due_date(contract: RentalContract, reference: date) -> date:
    """First due date on or after ``reference``.

    Rolls to the following month only when this month's due date is
    already behind the reference date.
    """
    _validate_due_day(contract.due_day)
    reference = _as_date(reference)
    candidate = clamped_due_date(reference.year, reference.month, contract.due_day)
    if candidate < reference:
        year, month = _next_month(reference.year, reference.month)
        candidate = clamped_due_date(year, month, contract.due_day)
    return candidate


def _validate_due_day(due_day: Any) -> None:
    _require_int("due_day", due_day)
    if not 1 <= due_day <= 31:
        raise ValidationError("due_day", "must be between 1 and 31")


# =============================================================================
# Interest and penalty
# =============================================================================


@traced_engine(
    "interest_penalty",
    "1.0",
    fingerprint_fields=(
        "amount_due",
        "days_late",
        "monthly_interest_rate",
        "penalty_rate",
        "grace_period_days",
    ),
)
def calculate_interest_and_penalty(
    amount_due: Decimal | int | float | str,
    days_late: int,
    monthly_interest_rate: Decimal | int | float | str,
    penalty_rate: Decimal | int | float | str,
    grace_period_days: int = 0,
) -> InterestPenaltyResult:
    """
    Charges owed on a late rent payment.

    The penalty is flat (charged once, whatever the delay).  Interest is
    simple, prorated daily from the monthly rate, and only counts the days
    after the grace period ends.

    Raises:
        ValidationError: amount_due <= 0, days_late < 0, a negative rate or
            a negative grace period.
    """
    amount = _require_decimal("amount_due", amount_due)
    if amount <= 0:
        raise ValidationError("amount_due", "must be greater than zero")

    days = _require_int("days_late", days_late)
    if days < 0:
        raise ValidationError("days_late", "cannot be negative")

    interest_rate = _require_decimal("monthly_interest_rate", monthly_interest_rate)
    if interest_rate < 0:
        raise ValidationError("monthly_interest_rate", "cannot be negative")

    flat_rate = _require_decimal("penalty_rate", penalty_rate)
    if flat_rate < 0:
        raise ValidationError("penalty_rate", "cannot be negative")

    grace = _require_int("grace_period_days", grace_period_days)
    if grace < 0:
        raise ValidationError("grace_period_days", "cannot be negative")

    if days <= grace:
        return InterestPenaltyResult(
            interest=ZERO_MONEY, penalty=ZERO_MONEY, total=amount,
        )

    penalty = round_money(amount * flat_rate)
    interest = round_money(amount * interest_rate * (days - grace) / DAYS_PER_MONTH)
    total = round_money(amount + interest + penalty)

    return InterestPenaltyResult(interest=interest, penalty=penalty, total=total)


# =============================================================================
# Schedule generation
# =============================================================================


@traced_engine("monthly_schedule", "1.0", fingerprint_fields=("contract",))
def generate_monthly_schedule(contract: RentalContract) -> list[RentObligation]:
    """
    One pending obligation per calendar month spanned by the contract.

    Covers the month of ``start_date`` through the month of ``end_date``
    inclusive.  Each due date is ``due_day`` clamped to the month's last day
    (31 becomes Feb 28 or 29).

    Raises:
        ValidationError: missing contract id, start_date >= end_date,
            monthly_rent <= 0, or due_day outside 1..31.
    """
    if contract.contract_id is None:
        raise ValidationError("contract_id", "contract must have an id")
    if contract.start_date >= contract.end_date:
        raise ValidationError("end_date", "must be after start_date")

    rent = _require_decimal("monthly_rent", contract.monthly_rent)
    if rent <= 0:
        raise ValidationError("monthly_rent", "must be greater than zero")

    _validate_due_day(contract.due_day)

    return [
        RentObligation(
            obligation_id=None,
            contract_id=contract.contract_id,
            reference_month=first_of_month,
            amount_due=rent,
            due_date=clamped_due_date(
                first_of_month.year, first_of_month.month, contract.due_day,
            ),
        )
        for first_of_month in month_span(contract.start_date, contract.end_date)
    ]


# =============================================================================
# Recomputation
# =============================================================================


def recompute_obligation(
    obligation: RentObligation,
    config: FinancialConfig,
    as_of: date,
) -> RentObligation:
    """
    Financial state of an obligation on ``as_of``.

    Pure: the same inputs always produce the same obligation.
    """
    if obligation.status.is_terminal:
        return obligation

    days_late = days_between(obligation.due_date, as_of)

    if days_late > config.grace_period_days:
        charges = calculate_interest_and_penalty(
            amount_due=obligation.amount_due,
            days_late=days_late,
            monthly_interest_rate=config.monthly_interest_rate,
            penalty_rate=config.penalty_rate,
            grace_period_days=config.grace_period_days,
        )
        return replace(
            obligation,
            accrued_interest=charges.interest,
            accrued_penalty=charges.penalty,
            status=ObligationStatus.OVERDUE,
        )

    if obligation.status == ObligationStatus.OVERDUE:
        # as_of earlier than the run that flagged it; keep the accrued state
        logger.debug(
            "overdue_obligation_within_grace",
            extra={
                "obligation_id": str(obligation.obligation_id),
                "days_late": days_late,
            },
        )
        return obligation

    return replace(
        obligation,
        accrued_interest=ZERO_MONEY,
        accrued_penalty=ZERO_MONEY,
        status=ObligationStatus.PENDING,
    )
