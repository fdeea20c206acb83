"""
Module: rental_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines.  This is
    the import surface for rental_batch and rental_kernel.services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rental_kernel.domain, rental_kernel.db.types,
    rental_kernel.exceptions and logging.

Invariants enforced:
    - Purity: engines never read the clock.  Dates are parameters.
    - Decimal-only arithmetic for money and rates.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are traced via ``@traced_engine``, emitting
    RENTAL_ENGINE_TRACE records with engine name, version, input
    fingerprint and duration.
"""

from rental_engines.calculation import (
    InterestPenaltyResult,
    calculate_interest_and_penalty,
    clamped_due_date,
    days_between,
    generate_monthly_schedule,
    is_within_contract,
    month_span,
    next_due_date,
    recompute_obligation,
)
from rental_engines.profitability import (
    ProfitabilityResult,
    ProfitabilityStats,
    calculate_profitability,
    compute_profitability_stats,
)
from rental_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "InterestPenaltyResult",
    "ProfitabilityResult",
    "ProfitabilityStats",
    "calculate_interest_and_penalty",
    "calculate_profitability",
    "clamped_due_date",
    "compute_input_fingerprint",
    "compute_profitability_stats",
    "days_between",
    "generate_monthly_schedule",
    "is_within_contract",
    "month_span",
    "next_due_date",
    "recompute_obligation",
    "traced_engine",
]
