"""
Module: rental_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money and
    rate columns.  Centralizes precision and rounding so that every model,
    engine and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and rental_engines.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Every monetary amount is a Decimal; float inputs
      are converted through ``str()`` so 0.1 stays 0.1.
    - ``round_money()`` is the ONLY sanctioned rounding function for
      monetary values (two places, ROUND_HALF_UP).

Failure modes:
    - ValueError from ``to_decimal()`` for values that are not numbers.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Interest, penalty and commission rates
Rate = Annotated[Decimal, Numeric(38, 18)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert an int, float, str or Decimal to Decimal without binary drift.

    Raises:
        ValueError: If value is not numeric (bools are rejected too).
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, (float, str)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    raise ValueError(f"Not a number: {value!r}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of places.

    This is the only rounding function used for monetary values.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
