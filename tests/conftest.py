"""
Pytest fixtures for the rental finance test suite.

Provides:
- In-memory SQLite sessions with every table created
- A deterministic clock fixed at 2026-02-01 12:00 UTC
- Captured structured logs
- Contract factories
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

import rental_batch.models  # noqa: F401
import rental_kernel.models  # noqa: F401
from rental_kernel.db.base import Base
from rental_kernel.db.engine import create_database_engine
from rental_kernel.db.immutability import register_immutability_listeners
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.domain.types import RentalContract
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_kernel.models.financial_config import FinancialConfigModel
from rental_kernel.services.contract_service import ContractService


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, coordinator):
            coordinator.run_daily_batch()
            logs = captured_logs()
            assert any(r["message"] == "daily_batch_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    """Every model is imported above, so the append-only set is complete."""
    register_immutability_listeners()
    yield


@pytest.fixture
def engine():
    eng = create_database_engine("sqlite:///:memory:")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(
        fixed_time=datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc),
    )


# =============================================================================
# Domain factories
# =============================================================================


@pytest.fixture
def contract_service(db_session, clock):
    return ContractService(db_session, clock=clock)


@pytest.fixture
def make_contract():
    """Factory for unsaved RentalContract DTOs."""

    def _make(
        monthly_rent=Decimal("1000.00"),
        start_date=date(2026, 1, 1),
        end_date=date(2026, 12, 31),
        due_day=10,
        contract_id=None,
    ) -> RentalContract:
        return RentalContract(
            contract_id=contract_id,
            property_id=uuid4(),
            tenant_id=uuid4(),
            monthly_rent=monthly_rent,
            start_date=start_date,
            end_date=end_date,
            due_day=due_day,
        )

    return _make


@pytest.fixture
def seed_contract(contract_service, make_contract):
    """Persist a contract and its schedule; returns the ContractSchedule."""

    def _seed(**overrides):
        return contract_service.create_contract(make_contract(**overrides))

    return _seed


@pytest.fixture
def active_config(db_session):
    """Store the standard 1% / 2% / 10% / 5-day configuration."""
    model = FinancialConfigModel(
        monthly_interest_rate=Decimal("0.01"),
        penalty_rate=Decimal("0.02"),
        commission_rate=Decimal("0.10"),
        grace_period_days=5,
        is_active=True,
    )
    db_session.add(model)
    db_session.flush()
    return model
