"""
Pytest configuration and shared test fixtures.

This module provides the test environment settings, a controllable clock,
order store and service fixtures over the in-memory repository, and the
FastAPI test client.
"""

import os

# Must be set before the application settings are first loaded
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_ORDER_STORAGE", "memory")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from upfit_orders.api.deps import reset_order_state
from upfit_orders.services.orders.identifiers import IdentifierGenerator
from upfit_orders.services.orders.repository import InMemoryOrderRepository
from upfit_orders.services.orders.service import OrderService
from upfit_orders.services.orders.state_machine import OrderStateMachine
from upfit_orders.services.orders.store import OrderStore


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to 2025-01-01 00:00 UTC.

    Returns:
        FixedClock instance
    """
    return FixedClock(datetime(2025, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def repository() -> InMemoryOrderRepository:
    """Fresh in-memory repository."""
    return InMemoryOrderRepository()


@pytest.fixture
def identifiers(repository: InMemoryOrderRepository) -> IdentifierGenerator:
    """Identifier generator drawing counters from the repository."""
    return IdentifierGenerator(repository)


@pytest.fixture
def state_machine(
    identifiers: IdentifierGenerator, clock: FixedClock
) -> OrderStateMachine:
    """State machine using the fixed clock."""
    return OrderStateMachine(identifiers, clock=clock)


@pytest.fixture
def store(
    repository: InMemoryOrderRepository,
    identifiers: IdentifierGenerator,
    state_machine: OrderStateMachine,
    clock: FixedClock,
) -> OrderStore:
    """Order store over the in-memory repository.

    Returns:
        OrderStore wired with the fixed clock
    """
    return OrderStore(
        repository,
        identifiers=identifiers,
        state_machine=state_machine,
        clock=clock,
    )


@pytest.fixture
def service(store: OrderStore) -> OrderService:
    """Order service facade over the store."""
    return OrderService(store)


@pytest.fixture
def order_payload() -> dict[str, Any]:
    """Valid creation payload for a crew cab 4x4 service body.

    Returns:
        Order creation payload
    """
    return {
        "dealer_code": "CVC101",
        "build": {
            "body_type": "Service Body",
            "manufacturer": "Knapheide",
            "chassis": {
                "series": "F-550",
                "cab": "Crew Cab",
                "drivetrain": "4x4",
                "wheelbase": "169",
                "gvwr": "19500",
                "powertrain": "diesel-6.7L",
            },
            "body_specs": {"body_length": 11, "material": "Steel"},
            "upfitter": {"id": "knapheide-detroit", "name": "Knapheide Detroit"},
        },
        "pricing": {"chassis_msrp": 64000, "body_price": 21000, "total": 91800},
    }


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """
    Create a synchronous test client for the FastAPI application.

    The process-wide in-memory repository is reset around each test.

    Yields:
        TestClient: Synchronous test client for FastAPI app
    """
    from upfit_orders.main import app

    reset_order_state()
    with TestClient(app) as client:
        yield client
    reset_order_state()
