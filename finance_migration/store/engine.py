"""
Module: finance_migration.store.engine
Responsibility: SQLAlchemy engine creation for the SQL store, session factory
    and transactional scope.

Invariants enforced:
    - SAVEPOINTs work on every supported backend.  The commit loop scopes
      each row in ``session.begin_nested()``; pysqlite's own transaction
      handling breaks that, so SQLite engines take over BEGIN themselves.
    - PostgreSQL engines pool with pre-ping (``postgres`` extra: psycopg2).

Failure modes:
    - sqlalchemy.exc.ArgumentError on a malformed URL.
    - The exception raised inside session_scope() after rollback.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from finance_migration.logging_config import get_logger

logger = get_logger("store.engine")


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN on SQLite so nested transactions behave."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Engine for the record store and migration repository.

    Args:
        database_url: ``sqlite:///path.db``, ``sqlite://`` (memory) or a
            PostgreSQL URL.
        echo: log every SQL statement.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo)
        enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception; always
    closes the session.
    """
    session = factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()
