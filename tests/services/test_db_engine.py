"""Tests for engine initialization and session_scope (rental_kernel/db/engine.py)."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import inspect, select

from rental_engines.segment_pricing import FormulaPricing
from rental_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from rental_modules.rentals.orm import RentalModel
from rental_modules.rentals.service import RentalBillingService


@pytest.fixture
def memory_engine():
    reset_engine()
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_engine()
    reset_engine()


def _create(session, clock, policy):
    return RentalBillingService(session, clock=clock, policy=policy).create_rental(
        "client-1",
        date(2024, 3, 1),
        date(2024, 3, 4),
        FormulaPricing(price_per_day=Decimal("100")),
        uuid4(),
    )


def test_uninitialized_engine_raises():
    reset_engine()

    with pytest.raises(RuntimeError, match="not initialized"):
        get_engine()
    with pytest.raises(RuntimeError):
        get_session()


def test_session_scope_commits(memory_engine, clock, policy):
    with session_scope() as session:
        rental = _create(session, clock, policy)

    with session_scope() as session:
        assert session.get(RentalModel, rental.id) is not None


def test_session_scope_rolls_back(memory_engine, clock, policy, captured_logs):
    with pytest.raises(RuntimeError, match="boom"):
        with session_scope() as session:
            _create(session, clock, policy)
            raise RuntimeError("boom")

    with session_scope() as session:
        assert session.scalars(select(RentalModel)).all() == []
    assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


def test_create_and_drop_tables(memory_engine):
    assert "rental_rentals" in inspect(memory_engine).get_table_names()

    drop_tables()

    assert inspect(memory_engine).get_table_names() == []
