"""
PaymentLifecycleProcessor -- recompute and persist every due obligation.

Contract:
    ``process_due_obligations(as_of)`` fetches PENDING obligations due on
    or before ``as_of``, recomputes each with the calculation engine, writes
    the changed fields back and appends an ``obligation-update`` audit entry.

Architecture: rental_batch/services.  Depends on the RentalPersistence
    protocol, the audit log service and rental_engines.

Invariants enforced:
    - Per-item isolation: each obligation runs inside
      ``persistence.item_boundary()`` (a SAVEPOINT).  An exception for one
      obligation rolls back only that obligation and becomes an
      ObligationFailure; the fold continues with the next one.
    - FinancialConfig is loaded once per call.  A missing or unreadable
      configuration falls back to DEFAULT_FINANCIAL_CONFIG.

Failure modes:
    - PersistenceError if the initial fetch fails.  Nothing is processed
      and the coordinator treats it as critical.
"""

from __future__ import annotations

import time
from datetime import date

from rental_engines.calculation import recompute_obligation
from rental_kernel.domain.types import (
    DEFAULT_FINANCIAL_CONFIG,
    DueObligation,
    FinancialConfig,
)
from rental_kernel.exceptions import PersistenceError, RentalFinanceError
from rental_kernel.logging_config import LogContext, get_logger
from rental_batch.domain.types import (
    OP_OBLIGATION_UPDATE,
    AuditCategory,
    AuditOutcome,
    DueProcessingResult,
    ObligationFailure,
    ObligationOutcome,
    ObligationProcessed,
    ObligationUpdate,
)
from rental_batch.ports import RentalPersistence
from rental_batch.services.audit_log import AuditLogService

logger = get_logger("batch.lifecycle")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class PaymentLifecycleProcessor:
    """Daily recomputation of due rent obligations.

    Non-goals:
        - Does NOT commit.  The caller owns the outer transaction.
        - Does NOT touch PAID or CANCELLED obligations.
    """

    def __init__(
        self,
        persistence: RentalPersistence,
        audit_log: AuditLogService,
    ):
        self._persistence = persistence
        self._audit = audit_log

    def load_financial_config(self) -> FinancialConfig:
        try:
            config = self._persistence.fetch_financial_config()
        except Exception:
            logger.warning("financial_config_unreadable_using_default", exc_info=True)
            return DEFAULT_FINANCIAL_CONFIG

        if config is None:
            logger.info("financial_config_missing_using_default")
            return DEFAULT_FINANCIAL_CONFIG
        return config

    def process_due_obligations(self, as_of: date) -> DueProcessingResult:
        start = time.monotonic()

        try:
            due = self._persistence.fetch_due_obligations(as_of)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError("fetch_due_obligations", str(exc)) from exc

        config = self.load_financial_config()

        logger.info(
            "due_obligations_fetched",
            extra={"as_of": as_of, "count": len(due)},
        )

        outcomes: list[ObligationOutcome] = []
        for item in due:
            outcomes.append(self._process_one(item, config, as_of))

        result = DueProcessingResult.from_outcomes(outcomes)

        logger.info(
            "due_obligations_processed",
            extra={
                "as_of": as_of,
                "processed": result.processed,
                "became_overdue": result.became_overdue,
                "failed": len(result.errors),
                "duration_ms": _elapsed_ms(start),
            },
        )
        return result

    def _process_one(
        self,
        item: DueObligation,
        config: FinancialConfig,
        as_of: date,
    ) -> ObligationOutcome:
        obligation = item.obligation
        item_start = time.monotonic()

        with LogContext.bind(
            obligation_id=str(obligation.obligation_id),
            contract_id=str(obligation.contract_id),
        ):
            try:
                with self._persistence.item_boundary():
                    updated = recompute_obligation(obligation, config, as_of)
                    self._persistence.update_obligation(
                        obligation.obligation_id,
                        ObligationUpdate(
                            accrued_interest=updated.accrued_interest,
                            accrued_penalty=updated.accrued_penalty,
                            status=updated.status,
                        ),
                    )
                    self._audit.record(
                        operation=OP_OBLIGATION_UPDATE,
                        category=AuditCategory.STATUS_UPDATE,
                        outcome=AuditOutcome.SUCCESS,
                        message=(
                            f"Obligation {obligation.obligation_id} "
                            f"{obligation.status.value} -> {updated.status.value}"
                        ),
                        details={
                            "obligation_id": obligation.obligation_id,
                            "as_of": as_of,
                            "before": {
                                "status": obligation.status,
                                "accrued_interest": obligation.accrued_interest,
                                "accrued_penalty": obligation.accrued_penalty,
                            },
                            "after": {
                                "status": updated.status,
                                "accrued_interest": updated.accrued_interest,
                                "accrued_penalty": updated.accrued_penalty,
                            },
                            "contract": item.audit_context(),
                        },
                        duration_ms=_elapsed_ms(item_start),
                        affected_records=1,
                    )
            except Exception as exc:
                error_code = (
                    exc.code if isinstance(exc, RentalFinanceError)
                    else "UNHANDLED_EXCEPTION"
                )
                failure = ObligationFailure(
                    obligation_id=obligation.obligation_id,
                    error_code=error_code,
                    message=str(exc),
                )
                logger.warning(
                    "obligation_processing_failed",
                    exc_info=True,
                    extra={"error_code": error_code},
                )
                self._record_failure(failure, _elapsed_ms(item_start))
                return failure

            logger.debug(
                "obligation_processed",
                extra={
                    "previous_status": obligation.status.value,
                    "new_status": updated.status.value,
                },
            )
            return ObligationProcessed(
                obligation_id=obligation.obligation_id,
                previous_status=obligation.status,
                new_status=updated.status,
                accrued_interest=updated.accrued_interest,
                accrued_penalty=updated.accrued_penalty,
            )

    def _record_failure(self, failure: ObligationFailure, duration_ms: int) -> None:
        try:
            with self._persistence.item_boundary():
                self._audit.record(
                    operation=OP_OBLIGATION_UPDATE,
                    category=AuditCategory.STATUS_UPDATE,
                    outcome=AuditOutcome.ERROR,
                    message=f"Obligation {failure.obligation_id} failed: {failure.message}",
                    details=failure.as_dict(),
                    duration_ms=duration_ms,
                    affected_records=0,
                )
        except Exception:
            logger.error("obligation_failure_audit_failed", exc_info=True)
