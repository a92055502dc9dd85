"""
Pytest fixtures for the migration engine test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- A deterministic clock, in-memory collections and a recording event sink
- Wired services (build_engine) over the in-memory repository
- An in-memory SQLite session for the SQLAlchemy store
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from finance_migration.config import get_engine_config
from finance_migration.domain.clock import DeterministicClock
from finance_migration.events import RecordingEventSink
from finance_migration.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from finance_migration.services import build_engine
from finance_migration.store.engine import create_store_engine
from finance_migration.store.memory import InMemoryRegistry
from finance_migration.store.repository import InMemoryMigrationRepository
from finance_migration.store.sql import create_store_tables


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
    Capture finance_migration logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, imports):
            imports.create_batch("jan", "csv", "invoices")
            logs = captured_logs()
            assert any(r["message"] == "batch_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("finance_migration")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def engine_config():
    return get_engine_config()


@pytest.fixture
def registry(deterministic_clock):
    return InMemoryRegistry(["invoices", "customers", "vendors"], clock=deterministic_clock)


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def repository():
    return InMemoryMigrationRepository()


@pytest.fixture
def engine(registry, repository, events, deterministic_clock, engine_config):
    return build_engine(
        registry,
        repository=repository,
        events=events,
        clock=deterministic_clock,
        config=engine_config,
    )


@pytest.fixture
def imports(engine):
    return engine.imports


@pytest.fixture
def exports(engine):
    return engine.exports


# =============================================================================
# SQL store
# =============================================================================


@pytest.fixture
def db_engine():
    eng = create_store_engine("sqlite://")
    create_store_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = Session(bind=db_engine, expire_on_commit=False)
    yield sess
    sess.close()
