"""Database connection manager and session factory."""

from functools import lru_cache
from typing import Generator, List

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from huddle.core.config import get_settings
from huddle.models import Base


def build_engine(database_url: str, **overrides) -> Engine:
    """Create an engine with the configured pool settings.

    SQLite engines skip the pool sizing options and get foreign keys switched
    on so group deletion cascades the same way it does on PostgreSQL.
    """
    settings = get_settings()
    if database_url.startswith("sqlite"):
        options = {
            "connect_args": {"check_same_thread": False, "timeout": 30},
            "echo": settings.SQL_ECHO,
        }
        options.update(overrides)
        engine = create_engine(database_url, **options)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    options = {
        "pool_size": settings.POOL_SIZE,
        "max_overflow": settings.MAX_OVERFLOW,
        "pool_recycle": settings.POOL_RECYCLE,
        "pool_timeout": settings.POOL_TIMEOUT,
        "pool_pre_ping": settings.POOL_PRE_PING,  # Validates connections before use
        "echo": settings.SQL_ECHO,
    }
    options.update(overrides)
    return create_engine(database_url, **options)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_session_factory(engine: Engine) -> sessionmaker:
    # Rows handed to the sync layer outlive their session
    return sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )


def create_schema(engine: Engine) -> List[str]:
    """Create any missing tables, constraints and indexes; return table names.

    Existing tables are left untouched. The unique keys the repositories rely
    on (room_key, group membership pairs, sender client keys) come from here.
    """
    Base.metadata.create_all(engine)
    return sorted(inspect(engine).get_table_names())


@lru_cache
def get_engine() -> Engine:
    """Get the SQLAlchemy engine for advanced use cases."""
    return build_engine(get_settings().DATABASE_URL)


@lru_cache
def get_session_local() -> sessionmaker:
    """Get the SessionLocal factory for testing or advanced use cases."""
    return build_session_factory(get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides database sessions.

    Yields:
        Session: SQLAlchemy session that automatically closes after use
    """
    db = get_session_local()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
