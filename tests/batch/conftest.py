"""
Fixtures for the daily batch tests.

``InMemoryPersistence`` implements the RentalPersistence protocol with
plain lists so processor and coordinator behaviour can be tested without
SQL, including injected failures.  Integration tests use the SQLAlchemy
implementation against the shared in-memory SQLite session.
"""

from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from rental_batch.domain.types import AuditLogEntry, AuditLogPage, ObligationUpdate
from rental_batch.services.audit_log import AuditLogService
from rental_batch.services.lifecycle_processor import PaymentLifecycleProcessor
from rental_batch.services.sql_persistence import SqlAlchemyPersistence
from rental_kernel.domain.types import (
    ContractStatus,
    DueObligation,
    FinancialConfig,
    ObligationContext,
    ObligationStatus,
    RentObligation,
)
from rental_kernel.exceptions import PersistenceError


class InMemoryPersistence:
    """List-backed RentalPersistence with switchable failures."""

    def __init__(self, due=(), config: FinancialConfig | None = None):
        self.due: list[DueObligation] = list(due)
        self.config = config
        self.updates: dict[UUID, ObligationUpdate] = {}
        self.audit: list[AuditLogEntry] = []
        self.read_notifications_purged_before = None

        self.fail_fetch: Exception | None = None
        self.fail_config: Exception | None = None
        self.fail_update_for: set[UUID] = set()
        self.fail_audit_operations: set[str] = set()
        self.fail_purge: Exception | None = None

    def fetch_due_obligations(self, as_of: date) -> list[DueObligation]:
        if self.fail_fetch is not None:
            raise self.fail_fetch
        return [
            d for d in self.due
            if d.obligation.status == ObligationStatus.PENDING
            and d.obligation.due_date <= as_of
        ]

    def update_obligation(self, obligation_id: UUID, update: ObligationUpdate) -> None:
        if obligation_id in self.fail_update_for:
            raise RuntimeError(f"disk full while writing {obligation_id}")
        self.updates[obligation_id] = update

    def fetch_financial_config(self) -> FinancialConfig | None:
        if self.fail_config is not None:
            raise self.fail_config
        return self.config

    def append_audit_log(self, entry: AuditLogEntry) -> AuditLogEntry:
        if entry.operation in self.fail_audit_operations:
            raise PersistenceError("append_audit_log", "audit table unavailable")
        stored = replace(entry, entry_id=uuid4())
        self.audit.append(stored)
        return stored

    def query_last_audit_log(self, operation: str) -> AuditLogEntry | None:
        matching = [e for e in self.audit if e.operation == operation]
        if not matching:
            return None
        return max(matching, key=lambda e: e.timestamp)

    def search_audit_logs(self, category=None, outcome=None, operation_contains=None,
                          start=None, end=None, page=1, limit=50) -> AuditLogPage:
        entries = sorted(self.audit, key=lambda e: e.timestamp, reverse=True)
        return AuditLogPage(
            entries=tuple(entries[(page - 1) * limit: page * limit]),
            total=len(entries),
            page=page,
            limit=limit,
        )

    def purge_audit_logs_older_than(self, cutoff) -> int:
        if self.fail_purge is not None:
            raise self.fail_purge
        kept = [e for e in self.audit if e.timestamp >= cutoff]
        purged = len(self.audit) - len(kept)
        self.audit = kept
        return purged

    def purge_read_notifications_older_than(self, cutoff) -> int:
        self.read_notifications_purged_before = cutoff
        return 0

    @contextmanager
    def item_boundary(self):
        updates = dict(self.updates)
        audit = list(self.audit)
        try:
            yield
        except Exception:
            self.updates = updates
            self.audit = audit
            raise

    def operations(self) -> list[str]:
        return [e.operation for e in self.audit]


def make_due(
    due_date: date,
    amount: str = "1000.00",
    status: ObligationStatus = ObligationStatus.PENDING,
) -> DueObligation:
    contract_id = uuid4()
    return DueObligation(
        obligation=RentObligation(
            obligation_id=uuid4(),
            contract_id=contract_id,
            reference_month=due_date.replace(day=1),
            amount_due=Decimal(amount),
            due_date=due_date,
            status=status,
        ),
        context=ObligationContext(
            contract_id=contract_id,
            property_id=uuid4(),
            tenant_id=uuid4(),
            monthly_rent=Decimal(amount),
            due_day=due_date.day,
            contract_status=ContractStatus.ACTIVE,
        ),
    )


@pytest.fixture
def memory_persistence():
    return InMemoryPersistence()


@pytest.fixture
def memory_audit(memory_persistence, clock):
    return AuditLogService(memory_persistence, clock=clock)


@pytest.fixture
def memory_processor(memory_persistence, memory_audit):
    return PaymentLifecycleProcessor(memory_persistence, memory_audit)


@pytest.fixture
def sql_persistence(db_session):
    return SqlAlchemyPersistence(db_session)


@pytest.fixture
def sql_audit(sql_persistence, clock):
    return AuditLogService(sql_persistence, clock=clock)


@pytest.fixture
def due_obligation():
    """Factory for DueObligation DTOs; see ``make_due``."""
    return make_due
