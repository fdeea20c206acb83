"""
Pure domain layer.

Frozen value objects and the clock abstraction, with no dependency on the
ORM, the database or I/O.
"""

from rental_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)
from rental_kernel.domain.types import (
    DEFAULT_FINANCIAL_CONFIG,
    ContractStatus,
    DueObligation,
    FinancialConfig,
    ObligationContext,
    ObligationStatus,
    RentalContract,
    RentObligation,
)

__all__ = [
    "Clock",
    "ContractStatus",
    "DEFAULT_FINANCIAL_CONFIG",
    "DeterministicClock",
    "DueObligation",
    "FinancialConfig",
    "ObligationContext",
    "ObligationStatus",
    "RentObligation",
    "RentalContract",
    "SystemClock",
]
