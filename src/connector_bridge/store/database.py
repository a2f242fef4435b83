"""
Database initialization and connection management utilities.

This module provides functions for initializing an entity store database,
managing connections, and creating sessions. Engines and session factories
are cached per database URL so that a source and a target store can be
open in the same process.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, pool, text
from sqlalchemy.orm import Session, sessionmaker

from connector_bridge.exceptions import BridgeError, ConfigurationError, StoreError
from connector_bridge.store.models import Base
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)

# Engines and session factories keyed by database URL
_engines: dict[str, Engine] = {}
_session_factories: dict[str, sessionmaker] = {}


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 3600,
) -> Engine:
    """
    Create a SQLAlchemy engine with appropriate settings.

    Args:
        database_url: Database connection URL (sqlite:/// or postgresql://)
        echo: Whether to log SQL statements
        pool_size: Number of connections to maintain in the pool
        max_overflow: Maximum number of connections beyond pool_size
        pool_timeout: Timeout for getting a connection from the pool (seconds)
        pool_recycle: Recycle connections after this many seconds

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database URL is invalid
    """
    if not database_url:
        raise ConfigurationError("Database URL cannot be empty")

    try:
        is_sqlite = database_url.startswith("sqlite")

        if is_sqlite:
            engine = create_engine(
                database_url,
                echo=echo,
                poolclass=pool.NullPool,
                connect_args={"check_same_thread": False},
            )
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
                pool_recycle=pool_recycle,
            )

        logger.debug(
            "database_engine_created",
            database_type="sqlite" if is_sqlite else "server",
            pool_size=pool_size if not is_sqlite else "NullPool",
        )

        return engine

    except Exception as e:
        logger.error("database_engine_failed", error=str(e), database_url=database_url)
        raise ConfigurationError(f"Failed to create database engine: {e}") from e


def init_database(database_url: str, echo: bool = False, **pool_options: int) -> Engine:
    """
    Initialize an entity store database.

    Creates all tables if they don't exist. This is idempotent and safe
    to call multiple times.

    Args:
        database_url: Database connection URL
        echo: Whether to log SQL statements
        **pool_options: pool_size, max_overflow, pool_timeout, pool_recycle

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database initialization fails
    """
    if database_url in _engines:
        return _engines[database_url]

    engine = create_database_engine(database_url, echo=echo, **pool_options)

    try:
        Base.metadata.create_all(engine)
    except Exception as e:
        engine.dispose()
        logger.error("database_init_failed", error=str(e), database_url=database_url)
        raise ConfigurationError(f"Failed to initialize database: {e}") from e

    _engines[database_url] = engine
    _session_factories[database_url] = sessionmaker(bind=engine, expire_on_commit=False)

    logger.info(
        "database_initialized",
        database_url=database_url,
        tables=len(Base.metadata.tables),
    )

    return engine


def get_engine(database_url: str) -> Engine:
    """Get the engine for a database URL, initializing it on first use."""
    return init_database(database_url)


@contextmanager
def get_session(database_url: str) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on success and rolls back on exception.
    Always closes the session when done.

    Usage:
        with get_session(url) as session:
            session.add(obj)

    Args:
        database_url: Database connection URL

    Yields:
        SQLAlchemy Session instance

    Raises:
        StoreError: If a database operation fails. Errors that are already
            BridgeError subclasses propagate unchanged after the rollback.
    """
    get_engine(database_url)
    session = _session_factories[database_url]()

    try:
        yield session
        session.commit()

    except BridgeError:
        session.rollback()
        raise

    except Exception as e:
        session.rollback()
        logger.error("database_session_rolled_back", error=str(e))
        raise StoreError(f"Database operation failed: {e}") from e

    finally:
        session.close()


def dispose_database(database_url: str) -> None:
    """Dispose of the cached engine for a database URL, if any."""
    engine = _engines.pop(database_url, None)
    _session_factories.pop(database_url, None)
    if engine is not None:
        engine.dispose()


def validate_database_connection(database_url: str) -> bool:
    """
    Validate that a database connection can be established.

    Args:
        database_url: Database connection URL

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = create_database_engine(database_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        engine.dispose()
        return True

    except Exception as e:
        logger.error("database_connection_invalid", error=str(e), database_url=database_url)
        return False
