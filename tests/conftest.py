"""Shared pytest fixtures for rollout tests."""

import tempfile
import os
from datetime import datetime
from decimal import Decimal

import pytest

from rollout.database.factories import create_sqlite_database
from rollout.database.memory import InMemoryDatabase, InMemoryTransactionFeed
from rollout.domain.city import CityRegistry
from rollout.domain.entities import CityStatus
from rollout.domain.lifecycle import LifecycleGate
from rollout.domain.planning import PlanningLedger
from rollout.domain.reconciliation import FallbackTable, RevenueReconciler
from rollout.logging_config import reset_logging

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0)

# Name, ID, status, population, population 15-44
SAMPLE_CITIES = [
    ("Nova Bandeirantes", 5106158, CityStatus.EXPANSION, 15493, 7012),
    ("Nova Monte Verde", 5106216, CityStatus.EXPANSION, 9411, 4102),
    ("Apiacás", 5101407, CityStatus.PLANNING, 10256, 4620),
    ("Paranaíta", 5106299, CityStatus.PLANNING, 11316, 5050),
]

FALLBACK_ESTIMATES = {
    "Nova Bandeirantes": Decimal("961"),
    "Nova Monte Verde": Decimal("1529"),
    "Apiacás": Decimal("48"),
    "Paranaíta": Decimal("57"),
}


@pytest.fixture(autouse=True)
def _reset_logging():
    """Leave the rollout logger unconfigured between tests."""
    yield
    reset_logging()


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def memory_db():
    """Create an empty in-memory store."""
    return InMemoryDatabase()


@pytest.fixture
def memory_feed():
    """Create an empty in-memory transaction feed."""
    return InMemoryTransactionFeed()


@pytest.fixture
def registry(temp_db):
    """Create a CityRegistry with a temporary database and a fixed clock."""
    return CityRegistry(temp_db, clock=lambda: FIXED_NOW)


@pytest.fixture
def ledger(temp_db):
    """Create a PlanningLedger with a temporary database."""
    return PlanningLedger(temp_db)


@pytest.fixture
def gate(temp_db):
    """Create a LifecycleGate with a temporary database."""
    return LifecycleGate(temp_db)


@pytest.fixture
def fallback_table():
    """Fallback table covering every sample city."""
    return FallbackTable(FALLBACK_ESTIMATES)


@pytest.fixture
def reconciler(memory_db, memory_feed, fallback_table, sample_memory_cities):
    """Create a RevenueReconciler over the in-memory store and feed."""
    return RevenueReconciler(
        memory_db, memory_feed, fallback=fallback_table, sleep=lambda seconds: None
    )


def _create_cities(db):
    cities = {}
    for name, city_id, status, population, population_15_to_44 in SAMPLE_CITIES:
        db.create_city(
            city_id=city_id,
            name=name,
            status=status,
            population=population,
            population_15_to_44=population_15_to_44,
        )
        cities[name] = db.get_city(city_id)
    return cities


@pytest.fixture
def sample_cities(temp_db):
    """Create the sample cities in the temporary database; returns name -> City."""
    return _create_cities(temp_db)


@pytest.fixture
def sample_memory_cities(memory_db):
    """Create the sample cities in the in-memory store; returns name -> City."""
    return _create_cities(memory_db)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
