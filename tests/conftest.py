"""
Pytest fixtures for the rental billing test suite.

Provides:
- Structured logging configured once per session, plus log capture
- In-memory SQLite sessions with every rental table created
- Deterministic clock, default billing policy, fresh lock registry
- Service factories bound to the above
"""

import json
import logging
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rental_config import BillingPolicy, reset_active_config
from rental_kernel.db.base import Base
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_kernel.services.lock_registry import KeyedLockRegistry
from rental_modules._orm_registry import import_all_orm_models
from rental_modules.long_term.service import LongTermContractService
from rental_modules.rentals.service import RentalBillingService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


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


@pytest.fixture(autouse=True)
def _reset_billing_config():
    reset_active_config()
    yield
    reset_active_config()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, rental_service):
            rental_service.extend(...)
            logs = captured_logs()
            assert any(r["message"] == "rental_extended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine with every rental table."""
    import_all_orm_models()
    eng = create_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def clock():
    return DeterministicClock.on(date(2024, 3, 1))


@pytest.fixture
def policy():
    return BillingPolicy()


@pytest.fixture
def locks():
    return KeyedLockRegistry()


@pytest.fixture
def rental_service(session, clock, policy, locks):
    return RentalBillingService(session, clock=clock, policy=policy, locks=locks)


@pytest.fixture
def contract_service(session, clock, policy, locks):
    return LongTermContractService(session, clock=clock, policy=policy, locks=locks)
