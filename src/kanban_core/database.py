"""Database engine construction and session management.

Engines and session factories are built explicitly and handed to the
application (see `api.main.create_app`); nothing here holds a global
connection.
"""
import logging
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings, get_settings

logger = logging.getLogger("kanban-core.database")

# SQLSTATE codes for serialization_failure and deadlock_detected
_RETRYABLE_PG_CODES = {"40001", "40P01"}


def create_db_engine(database_url: Optional[str] = None, settings: Optional[Settings] = None) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    PostgreSQL engines get a bounded connection pool. SQLite engines are set
    up so that every transaction starts with BEGIN IMMEDIATE, which takes the
    write lock before the first read and serializes concurrent reorders the
    same way row locks do on PostgreSQL.

    Args:
        database_url: Database URL (defaults to settings.database_url)
        settings: Settings instance (defaults to get_settings())

    Returns:
        Engine: configured engine
    """
    settings = settings or get_settings()
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=settings.sql_echo,
            connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout_s},
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            # Let SQLAlchemy emit BEGIN itself
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        logger.info("Created SQLite engine with immediate transactions")
        return engine

    engine = create_engine(
        url,
        echo=settings.sql_echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_timeout=settings.db_pool_timeout,
    )
    logger.info("Created database engine (pool_size=%s)", settings.db_pool_size)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory used by the API and services."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency function to get a database session.

    The session factory is read from `app.state`, where `create_app` put it.

    Yields:
        Session: SQLAlchemy database session
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def is_retryable_error(exc: Exception) -> bool:
    """
    Check whether a database error is a transient concurrency failure.

    Covers PostgreSQL serialization failures and deadlocks and SQLite lock
    timeouts. Everything else is a real error.
    """
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _RETRYABLE_PG_CODES:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "database is busy" in message
