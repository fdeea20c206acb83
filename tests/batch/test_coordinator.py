"""
Tests for BatchRunCoordinator.run_daily_batch.

Covers:
- Idempotency per calendar date and the force override
- Audit entries written per stage
- Partial failure vs. critical failure reporting
- Retention failures never escalate
- The coordinator never raises
- Wiring through from_session against SQLite
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rental_batch.coordinator import BatchRunCoordinator
from rental_batch.domain.types import (
    OP_BATCH_COMPLETE,
    OP_BATCH_CRITICAL,
    OP_BATCH_START,
    OP_DUE_PROCESSING,
    OP_NOTIFICATION_DISPATCH,
    OP_OBLIGATION_UPDATE,
    OP_RETENTION_CLEANUP,
    AuditCategory,
    AuditOutcome,
    NotificationDispatchResult,
)
from rental_batch.models.audit_log import AuditLogModel
from rental_batch.services.notifications import (
    NullNotificationDispatcher,
    SqlNotificationDispatcher,
)
from rental_config.schema import NotificationSettings, RentalSettings, RetentionSettings
from rental_kernel.domain.types import ObligationStatus
from rental_kernel.exceptions import PersistenceError
from rental_kernel.models.obligation import RentObligationModel

AS_OF = date(2026, 2, 1)

STAGE_OPERATIONS = [
    OP_BATCH_START,
    OP_DUE_PROCESSING,
    OP_NOTIFICATION_DISPATCH,
    OP_RETENTION_CLEANUP,
    OP_BATCH_COMPLETE,
]


class FixedDispatcher:
    def __init__(self, result: NotificationDispatchResult):
        self.result = result
        self.calls: list[date] = []

    def process_notifications(self, as_of):
        self.calls.append(as_of)
        return self.result


class ExplodingDispatcher:
    def process_notifications(self, as_of):
        raise RuntimeError("smtp relay unreachable")


@pytest.fixture
def make_coordinator(memory_persistence, memory_processor, memory_audit, clock):
    def _make(dispatcher=None, retention=None):
        return BatchRunCoordinator(
            persistence=memory_persistence,
            processor=memory_processor,
            audit_log=memory_audit,
            dispatcher=dispatcher,
            retention=retention,
            clock=clock,
        )

    return _make


@pytest.fixture
def coordinator(make_coordinator):
    return make_coordinator()


# =============================================================================
# Normal runs
# =============================================================================


class TestSuccessfulRun:
    def test_writes_one_entry_per_stage(self, coordinator, memory_persistence, due_obligation):
        memory_persistence.due = [due_obligation(date(2026, 1, 10))]

        report = coordinator.run_daily_batch(AS_OF)

        assert report.overall_success is True
        assert report.already_run is False
        assert [e.operation for e in report.audit_entries] == STAGE_OPERATIONS
        assert memory_persistence.operations() == [
            OP_BATCH_START,
            OP_OBLIGATION_UPDATE,
            OP_DUE_PROCESSING,
            OP_NOTIFICATION_DISPATCH,
            OP_RETENTION_CLEANUP,
            OP_BATCH_COMPLETE,
        ]

    def test_report_counts(self, make_coordinator, memory_persistence, due_obligation):
        memory_persistence.due = [
            due_obligation(date(2026, 1, 10)),
            due_obligation(date(2026, 1, 30)),
        ]
        dispatcher = FixedDispatcher(NotificationDispatchResult(created=2, sent=3))

        report = make_coordinator(dispatcher=dispatcher).run_daily_batch(AS_OF)

        assert report.obligations_processed == 2
        assert report.obligations_became_overdue == 1
        assert report.notifications_processed == 5
        assert report.obligation_errors == ()
        assert dispatcher.calls == [AS_OF]

    def test_as_of_defaults_to_clock_date(self, coordinator):
        report = coordinator.run_daily_batch()

        assert report.as_of_date == date(2026, 2, 1)

    def test_complete_entry_categories(self, coordinator):
        report = coordinator.run_daily_batch(AS_OF)

        by_operation = {e.operation: e for e in report.audit_entries}
        assert by_operation[OP_BATCH_COMPLETE].category == AuditCategory.DUE_DATE_PROCESSING
        assert by_operation[OP_BATCH_COMPLETE].outcome == AuditOutcome.SUCCESS
        assert (
            by_operation[OP_NOTIFICATION_DISPATCH].category
            == AuditCategory.NOTIFICATION_DISPATCH
        )

    def test_run_id_bound_to_logs(self, coordinator, memory_persistence, due_obligation, captured_logs):
        memory_persistence.due = [due_obligation(date(2026, 1, 10))]

        coordinator.run_daily_batch(AS_OF)

        logs = captured_logs()
        completed = next(r for r in logs if r["message"] == "daily_batch_completed")
        processed = next(r for r in logs if r["message"] == "due_obligations_processed")
        assert completed["run_id"]
        assert processed["run_id"] == completed["run_id"]


# =============================================================================
# Idempotency
# =============================================================================


class TestIdempotency:
    def test_second_run_same_date_is_noop(self, coordinator, memory_persistence, due_obligation):
        memory_persistence.due = [due_obligation(date(2026, 1, 10))]
        coordinator.run_daily_batch(AS_OF)
        entries_after_first = len(memory_persistence.audit)
        memory_persistence.updates.clear()

        second = coordinator.run_daily_batch(AS_OF)

        assert second.already_run is True
        assert second.overall_success is True
        assert second.obligations_processed == 0
        assert second.audit_entries == ()
        assert second.last_run_at is not None
        assert memory_persistence.updates == {}
        assert len(memory_persistence.audit) == entries_after_first

    def test_backfill_date_not_repeated(
        self, coordinator, memory_persistence, due_obligation, clock,
    ):
        backfill = date(2025, 6, 1)
        assert backfill != clock.today()
        memory_persistence.due = [due_obligation(date(2025, 5, 30))]
        first = coordinator.run_daily_batch(backfill)
        assert first.obligations_processed == 1
        memory_persistence.updates.clear()

        second = coordinator.run_daily_batch(backfill)

        assert second.already_run is True
        assert second.obligations_processed == 0
        assert memory_persistence.updates == {}

    def test_backfill_date_blocked_on_a_later_day(
        self, coordinator, memory_persistence, clock,
    ):
        backfill = date(2025, 6, 1)
        coordinator.run_daily_batch(backfill)
        clock.advance_days(3)

        assert coordinator.run_daily_batch(backfill).already_run is True

    def test_force_reruns(self, coordinator, memory_persistence, due_obligation):
        memory_persistence.due = [due_obligation(date(2026, 1, 10))]
        coordinator.run_daily_batch(AS_OF)

        forced = coordinator.run_daily_batch(AS_OF, force=True)

        assert forced.already_run is False
        assert forced.obligations_processed == 1
        assert memory_persistence.operations().count(OP_BATCH_COMPLETE) == 2

    def test_next_day_runs(self, coordinator, clock):
        coordinator.run_daily_batch(AS_OF)
        clock.advance_days(1)

        report = coordinator.run_daily_batch(AS_OF + timedelta(days=1))

        assert report.already_run is False

    def test_failed_run_does_not_block_retry(self, coordinator, memory_persistence):
        memory_persistence.fail_fetch = PersistenceError("fetch_due_obligations", "down")
        coordinator.run_daily_batch(AS_OF)
        memory_persistence.fail_fetch = None

        retry = coordinator.run_daily_batch(AS_OF)

        assert retry.already_run is False
        assert retry.overall_success is True


# =============================================================================
# Failures
# =============================================================================


class TestPartialFailure:
    def test_obligation_errors_mark_run_partial(
        self, coordinator, memory_persistence, due_obligation,
    ):
        bad = due_obligation(date(2026, 1, 10))
        memory_persistence.due = [bad, due_obligation(date(2026, 1, 12))]
        memory_persistence.fail_update_for = {bad.obligation.obligation_id}

        report = coordinator.run_daily_batch(AS_OF)

        assert report.overall_success is False
        assert report.critical_errors == ()
        assert report.obligations_processed == 1
        assert [e.obligation_id for e in report.obligation_errors] == [
            bad.obligation.obligation_id,
        ]
        outcomes = {e.operation: e.outcome for e in report.audit_entries}
        assert outcomes[OP_DUE_PROCESSING] == AuditOutcome.PARTIAL
        assert outcomes[OP_BATCH_COMPLETE] == AuditOutcome.PARTIAL

    def test_notification_errors_mark_run_partial(self, make_coordinator):
        dispatcher = FixedDispatcher(
            NotificationDispatchResult(created=1, errors=("overdue_payment: boom",)),
        )

        report = make_coordinator(dispatcher=dispatcher).run_daily_batch(AS_OF)

        assert report.overall_success is False
        assert report.notification_errors == ("overdue_payment: boom",)
        assert report.critical_errors == ()


class TestCriticalFailure:
    def test_fetch_failure_is_critical(self, coordinator, memory_persistence, captured_logs):
        memory_persistence.fail_fetch = PersistenceError("fetch_due_obligations", "db gone")

        report = coordinator.run_daily_batch(AS_OF)

        assert report.overall_success is False
        assert len(report.critical_errors) == 1
        assert OP_DUE_PROCESSING in report.critical_errors[0]
        assert memory_persistence.operations() == [OP_BATCH_START, OP_BATCH_CRITICAL]
        critical = memory_persistence.audit[-1]
        assert critical.outcome == AuditOutcome.ERROR
        assert critical.details["error_code"] == "PERSISTENCE_ERROR"
        assert any(r["message"] == "daily_batch_critical_error" for r in captured_logs())

    def test_dispatcher_crash_keeps_processing_counts(
        self, make_coordinator, memory_persistence, due_obligation,
    ):
        memory_persistence.due = [due_obligation(date(2026, 1, 10))]

        report = make_coordinator(dispatcher=ExplodingDispatcher()).run_daily_batch(AS_OF)

        assert report.overall_success is False
        assert report.obligations_processed == 1
        assert OP_NOTIFICATION_DISPATCH in report.critical_errors[0]
        assert OP_BATCH_COMPLETE not in memory_persistence.operations()

    def test_never_raises_when_audit_is_down(self, coordinator, memory_persistence):
        memory_persistence.fail_audit_operations = set(STAGE_OPERATIONS) | {OP_BATCH_CRITICAL}

        report = coordinator.run_daily_batch(AS_OF)

        assert report.overall_success is False
        assert report.critical_errors
        assert report.audit_entries == ()


class TestRetention:
    def test_failure_is_swallowed(self, coordinator, memory_persistence, captured_logs):
        memory_persistence.fail_purge = RuntimeError("lock timeout")

        report = coordinator.run_daily_batch(AS_OF)

        assert report.overall_success is True
        assert report.critical_errors == ()
        assert report.retention.error == "lock timeout"
        retention_entry = next(
            e for e in report.audit_entries if e.operation == OP_RETENTION_CLEANUP
        )
        assert retention_entry.outcome == AuditOutcome.ERROR
        assert any(r["message"] == "retention_cleanup_failed" for r in captured_logs())

    def test_uses_configured_windows(self, make_coordinator, memory_persistence, clock):
        coordinator = make_coordinator(
            retention=RetentionSettings(audit_log_days=10, read_notification_days=5),
        )

        report = coordinator.run_daily_batch(AS_OF)

        assert memory_persistence.read_notifications_purged_before == (
            clock.now() - timedelta(days=5)
        )
        entry = next(e for e in report.audit_entries if e.operation == OP_RETENTION_CLEANUP)
        assert entry.details["audit_log_days"] == 10

    def test_purges_old_entries(self, coordinator, memory_persistence, clock):
        coordinator.run_daily_batch(AS_OF)
        clock.advance_days(91)

        report = coordinator.run_daily_batch(AS_OF + timedelta(days=91))

        assert report.retention.audit_entries_purged == 5


# =============================================================================
# Statistics
# =============================================================================


class TestLastRunStatistics:
    def test_no_runs(self, coordinator):
        assert coordinator.last_run_statistics().has_run is False

    def test_reflects_last_completed_run(self, coordinator, memory_persistence, due_obligation):
        memory_persistence.due = [due_obligation(date(2026, 1, 10))]
        coordinator.run_daily_batch(AS_OF)

        stats = coordinator.last_run_statistics()

        assert stats.has_run is True
        assert stats.as_of_date == AS_OF
        assert stats.overall_success is True
        assert stats.obligations_processed == 1
        assert stats.obligations_became_overdue == 1
        assert stats.error_count == 0


# =============================================================================
# SQL wiring
# =============================================================================


class TestFromSession:
    def test_wires_sql_dispatcher_by_default(self, db_session, clock):
        coordinator = BatchRunCoordinator.from_session(db_session, clock=clock)

        assert isinstance(coordinator._dispatcher, SqlNotificationDispatcher)
        assert coordinator.clock is clock

    def test_disabled_notifications_use_null_dispatcher(self, db_session, clock):
        settings = RentalSettings(notifications=NotificationSettings(enabled=False))

        coordinator = BatchRunCoordinator.from_session(db_session, settings, clock=clock)

        assert isinstance(coordinator._dispatcher, NullNotificationDispatcher)

    def test_full_run_against_sqlite(self, seed_contract, active_config, db_session, clock):
        schedule = seed_contract()
        coordinator = BatchRunCoordinator.from_session(db_session, clock=clock)

        report = coordinator.run_daily_batch()

        assert report.overall_success is True
        assert report.obligations_processed == 1
        assert report.obligations_became_overdue == 1
        # one overdue notice created, then sent
        assert report.notifications_processed == 2
        january = db_session.get(RentObligationModel, schedule.obligations[0].obligation_id)
        assert january.status == ObligationStatus.OVERDUE.value
        assert january.accrued_penalty == Decimal("20.00")

    def test_second_run_same_day_performs_no_updates(self, seed_contract, db_session, clock):
        seed_contract()
        coordinator = BatchRunCoordinator.from_session(db_session, clock=clock)
        coordinator.run_daily_batch(AS_OF)

        def _update_entries() -> int:
            return db_session.execute(
                select(func.count()).select_from(AuditLogModel)
                .where(AuditLogModel.operation == OP_OBLIGATION_UPDATE)
            ).scalar_one()

        before = _update_entries()
        second = coordinator.run_daily_batch(AS_OF)

        assert second.already_run is True
        assert second.obligations_processed == 0
        assert _update_entries() == before
