"""
BatchRunCoordinator -- entry point of the daily rent batch.

Contract:
    ``run_daily_batch(as_of, force)`` runs the daily sequence: idempotency
    check, due-obligation processing, notification dispatch and retention
    cleanup, and writes a summary audit entry.  It always returns a
    BatchRunReport and never raises.

Architecture: rental_batch (top-level).  ``from_session()`` is the single
    place where the SQLAlchemy-backed collaborators are composed.

Invariants enforced:
    - One clock for every collaborator.
    - A run is not repeated for an as-of date that the last completed run
      covered, either as its as-of date or as the day it finished on,
      unless ``force`` is given.  The check is read-then-decide, so
      concurrent invocations can both pass it.
    - Retention failures are logged and recorded, never escalated.
    - Anything else that escapes a stage becomes a critical error on the
      report plus a ``daily-batch-critical-error`` audit entry.
"""

from __future__ import annotations

import time
from datetime import date, timedelta
from uuid import uuid4

from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import BatchCriticalError, RentalFinanceError
from rental_kernel.logging_config import LogContext, get_logger
from rental_config.schema import RentalSettings, RetentionSettings
from rental_batch.domain.types import (
    OP_BATCH_COMPLETE,
    OP_BATCH_CRITICAL,
    OP_BATCH_START,
    OP_DUE_PROCESSING,
    OP_NOTIFICATION_DISPATCH,
    OP_RETENTION_CLEANUP,
    AuditCategory,
    AuditLogEntry,
    AuditOutcome,
    BatchRunReport,
    DueProcessingResult,
    LastRunStatistics,
    NotificationDispatchResult,
    RetentionResult,
)
from rental_batch.ports import NotificationDispatcher, RentalPersistence
from rental_batch.services.audit_log import AuditLogService
from rental_batch.services.lifecycle_processor import PaymentLifecycleProcessor
from rental_batch.services.notifications import (
    NullNotificationDispatcher,
    SqlNotificationDispatcher,
)
from rental_batch.services.sql_persistence import SqlAlchemyPersistence

logger = get_logger("batch.coordinator")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _covers(previous: AuditLogEntry | None, as_of: date) -> bool:
    """True when the last completed run finished on, or was run for, ``as_of``."""
    if previous is None:
        return False
    recorded = (previous.details or {}).get("as_of_date")
    return previous.timestamp.date() == as_of or recorded == as_of.isoformat()


class BatchRunCoordinator:
    """Runs the daily batch against injected collaborators.

    Non-goals:
        - Does NOT commit.  The caller controls the transaction.
        - Does NOT schedule itself.  An external trigger calls
          ``run_daily_batch`` once per period.
    """

    def __init__(
        self,
        persistence: RentalPersistence,
        processor: PaymentLifecycleProcessor,
        audit_log: AuditLogService,
        dispatcher: NotificationDispatcher | None = None,
        retention: RetentionSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._persistence = persistence
        self._processor = processor
        self._audit = audit_log
        self._dispatcher = dispatcher or NullNotificationDispatcher()
        self._retention = retention or RetentionSettings()
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
    ) -> BatchRunCoordinator:
        """Create a fully wired coordinator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            settings: Optional loaded settings.  Defaults apply when None.
            clock: Optional clock for deterministic testing.
        """
        effective_settings = settings or RentalSettings()
        effective_clock = clock or SystemClock()

        persistence = SqlAlchemyPersistence(session)
        audit_log = AuditLogService(persistence, clock=effective_clock)

        dispatcher: NotificationDispatcher
        if effective_settings.notifications.enabled:
            dispatcher = SqlNotificationDispatcher(
                session,
                settings=effective_settings.notifications,
                clock=effective_clock,
            )
        else:
            dispatcher = NullNotificationDispatcher()

        return cls(
            persistence=persistence,
            processor=PaymentLifecycleProcessor(persistence, audit_log),
            audit_log=audit_log,
            dispatcher=dispatcher,
            retention=effective_settings.retention,
            clock=effective_clock,
        )

    # -------------------------------------------------------------------------
    # Daily run
    # -------------------------------------------------------------------------

    def run_daily_batch(
        self,
        as_of: date | None = None,
        force: bool = False,
    ) -> BatchRunReport:
        run_start = time.monotonic()
        as_of = as_of or self._clock.today()
        run_id = str(uuid4())

        entries: list[AuditLogEntry] = []
        due = DueProcessingResult(processed=0, became_overdue=0)
        notifications = NotificationDispatchResult()
        stage = "idempotency-check"

        with LogContext.bind(run_id=run_id, operation="daily-batch"):
            try:
                if not force:
                    previous = self._audit.last_entry(OP_BATCH_COMPLETE)
                    if _covers(previous, as_of):
                        logger.info(
                            "daily_batch_already_run",
                            extra={
                                "as_of": as_of,
                                "last_run_at": previous.timestamp.isoformat(),
                            },
                        )
                        return BatchRunReport(
                            as_of_date=as_of,
                            overall_success=True,
                            already_run=True,
                            last_run_at=previous.timestamp,
                            total_duration_ms=_elapsed_ms(run_start),
                        )

                logger.info(
                    "daily_batch_started",
                    extra={"as_of": as_of, "force": force},
                )
                stage = OP_BATCH_START
                entries.append(self._audit.record(
                    operation=OP_BATCH_START,
                    category=AuditCategory.DUE_DATE_PROCESSING,
                    outcome=AuditOutcome.SUCCESS,
                    message=f"Daily batch started for {as_of.isoformat()}",
                    details={"run_id": run_id, "as_of_date": as_of, "force": force},
                ))

                stage = OP_DUE_PROCESSING
                step_start = time.monotonic()
                due = self._processor.process_due_obligations(as_of)
                entries.append(self._audit.record(
                    operation=OP_DUE_PROCESSING,
                    category=AuditCategory.DUE_DATE_PROCESSING,
                    outcome=AuditOutcome.PARTIAL if due.errors else AuditOutcome.SUCCESS,
                    message=(
                        f"Processed {due.processed} obligation(s), "
                        f"{due.became_overdue} became overdue, "
                        f"{len(due.errors)} failed"
                    ),
                    details={
                        "run_id": run_id,
                        "processed": due.processed,
                        "became_overdue": due.became_overdue,
                        "errors": [e.as_dict() for e in due.errors],
                    },
                    duration_ms=_elapsed_ms(step_start),
                    affected_records=due.processed,
                ))

                stage = OP_NOTIFICATION_DISPATCH
                step_start = time.monotonic()
                notifications = self._dispatcher.process_notifications(as_of)
                entries.append(self._audit.record(
                    operation=OP_NOTIFICATION_DISPATCH,
                    category=AuditCategory.NOTIFICATION_DISPATCH,
                    outcome=(
                        AuditOutcome.PARTIAL if notifications.errors
                        else AuditOutcome.SUCCESS
                    ),
                    message=(
                        f"Created {notifications.created} notification(s), "
                        f"sent {notifications.sent}"
                    ),
                    details={
                        "run_id": run_id,
                        **notifications.details,
                        "errors": list(notifications.errors),
                    },
                    duration_ms=_elapsed_ms(step_start),
                    affected_records=notifications.processed,
                ))

                stage = OP_RETENTION_CLEANUP
                retention, retention_entry = self._run_retention(run_id)
                if retention_entry is not None:
                    entries.append(retention_entry)

                stage = OP_BATCH_COMPLETE
                overall_success = not due.errors and not notifications.errors
                total_ms = _elapsed_ms(run_start)
                entries.append(self._audit.record(
                    operation=OP_BATCH_COMPLETE,
                    category=AuditCategory.DUE_DATE_PROCESSING,
                    outcome=(
                        AuditOutcome.SUCCESS if overall_success
                        else AuditOutcome.PARTIAL
                    ),
                    message=(
                        f"Daily batch for {as_of.isoformat()} "
                        f"{'succeeded' if overall_success else 'finished with errors'}"
                    ),
                    details={
                        "run_id": run_id,
                        "as_of_date": as_of,
                        "overall_success": overall_success,
                        "obligations_processed": due.processed,
                        "obligations_became_overdue": due.became_overdue,
                        "notifications_processed": notifications.processed,
                        "error_count": len(due.errors) + len(notifications.errors),
                    },
                    duration_ms=total_ms,
                    affected_records=due.processed + notifications.processed,
                ))

                logger.info(
                    "daily_batch_completed",
                    extra={
                        "as_of": as_of,
                        "overall_success": overall_success,
                        "processed": due.processed,
                        "became_overdue": due.became_overdue,
                        "failed": len(due.errors),
                        "duration_ms": total_ms,
                    },
                )
                return BatchRunReport(
                    as_of_date=as_of,
                    obligations_processed=due.processed,
                    obligations_became_overdue=due.became_overdue,
                    notifications_processed=notifications.processed,
                    obligation_errors=due.errors,
                    audit_entries=tuple(entries),
                    total_duration_ms=total_ms,
                    overall_success=overall_success,
                    notification_errors=notifications.errors,
                    retention=retention,
                )

            except Exception as exc:
                critical = BatchCriticalError(stage, str(exc))
                logger.error(
                    "daily_batch_critical_error",
                    exc_info=True,
                    extra={"stage": stage, "error_code": critical.code},
                )
                critical_entry = self._record_critical(run_id, stage, exc, run_start)
                if critical_entry is not None:
                    entries.append(critical_entry)

                return BatchRunReport(
                    as_of_date=as_of,
                    obligations_processed=due.processed,
                    obligations_became_overdue=due.became_overdue,
                    notifications_processed=notifications.processed,
                    obligation_errors=due.errors,
                    audit_entries=tuple(entries),
                    total_duration_ms=_elapsed_ms(run_start),
                    overall_success=False,
                    critical_errors=(str(critical),),
                    notification_errors=notifications.errors,
                )

    def _run_retention(
        self, run_id: str,
    ) -> tuple[RetentionResult, AuditLogEntry | None]:
        step_start = time.monotonic()
        try:
            with self._persistence.item_boundary():
                audit_purged = self._audit.purge_older_than(
                    self._retention.audit_log_days,
                )
                notifications_purged = (
                    self._persistence.purge_read_notifications_older_than(
                        self._clock.now()
                        - timedelta(days=self._retention.read_notification_days),
                    )
                )
            result = RetentionResult(
                audit_entries_purged=audit_purged,
                notifications_purged=notifications_purged,
            )
            outcome = AuditOutcome.SUCCESS
            message = (
                f"Purged {audit_purged} audit entr(ies) and "
                f"{notifications_purged} read notification(s)"
            )
        except Exception as exc:
            logger.warning("retention_cleanup_failed", exc_info=True)
            result = RetentionResult(error=str(exc))
            outcome = AuditOutcome.ERROR
            message = f"Retention cleanup failed: {exc}"

        try:
            with self._persistence.item_boundary():
                entry = self._audit.record(
                    operation=OP_RETENTION_CLEANUP,
                    category=AuditCategory.DUE_DATE_PROCESSING,
                    outcome=outcome,
                    message=message,
                    details={
                        "run_id": run_id,
                        "audit_log_days": self._retention.audit_log_days,
                        "read_notification_days": self._retention.read_notification_days,
                        "audit_entries_purged": result.audit_entries_purged,
                        "notifications_purged": result.notifications_purged,
                        "error": result.error,
                    },
                    duration_ms=_elapsed_ms(step_start),
                    affected_records=(
                        result.audit_entries_purged + result.notifications_purged
                    ),
                )
        except Exception:
            logger.warning("retention_audit_failed", exc_info=True)
            entry = None
        return result, entry

    def _record_critical(
        self,
        run_id: str,
        stage: str,
        exc: Exception,
        run_start: float,
    ) -> AuditLogEntry | None:
        try:
            with self._persistence.item_boundary():
                return self._audit.record(
                    operation=OP_BATCH_CRITICAL,
                    category=AuditCategory.DUE_DATE_PROCESSING,
                    outcome=AuditOutcome.ERROR,
                    message=f"Daily batch aborted during {stage}: {exc}",
                    details={
                        "run_id": run_id,
                        "stage": stage,
                        "error_type": type(exc).__name__,
                        "error_code": (
                            exc.code if isinstance(exc, RentalFinanceError)
                            else "UNHANDLED_EXCEPTION"
                        ),
                    },
                    duration_ms=_elapsed_ms(run_start),
                )
        except Exception:
            logger.error("critical_error_audit_failed", exc_info=True)
            return None

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def last_run_statistics(self) -> LastRunStatistics:
        """Figures from the most recent ``daily-batch-complete`` entry."""
        last = self._audit.last_entry(OP_BATCH_COMPLETE)
        if last is None:
            return LastRunStatistics(has_run=False)

        details = last.details or {}
        as_of_raw = details.get("as_of_date")
        return LastRunStatistics(
            has_run=True,
            last_run_at=last.timestamp,
            as_of_date=date.fromisoformat(as_of_raw) if as_of_raw else None,
            overall_success=details.get("overall_success"),
            obligations_processed=details.get("obligations_processed", 0),
            obligations_became_overdue=details.get("obligations_became_overdue", 0),
            notifications_processed=details.get("notifications_processed", 0),
            error_count=details.get("error_count", 0),
            duration_ms=last.duration_ms,
        )

    @property
    def clock(self) -> Clock:
        return self._clock
