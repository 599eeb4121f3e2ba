import logging

from sqlalchemy import create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from elibrary.core.config import get_database_url

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()

# Internal lazy globals
_engine = None
_SessionLocal = None
_database_url = None


def _build_engine(database_url: str):
    url = make_url(database_url)

    if url.drivername.startswith("postgres"):
        # Production PostgreSQL pooling
        return create_engine(
            database_url,
            pool_size=20,
            max_overflow=40,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={
                "application_name": "elibrary",  # Visible in pg_stat_activity
                "connect_timeout": 10,
            },
        )

    if url.drivername.startswith("sqlite") and (
        url.database in (None, "", ":memory:")
    ):
        # Single shared in-memory database across the process so DDL persists
        # across sessions (tests create tables then open new sessions).
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(database_url)


def get_engine():
    """Return a cached SQLAlchemy engine, creating it from DATABASE_URL on
    first call. Tests can set DATABASE_URL before the engine is constructed;
    a changed URL disposes the old engine and builds a new one."""
    global _engine, _database_url, _SessionLocal
    database_url = get_database_url()
    if _engine is None or _database_url != database_url:
        if _engine is not None:
            _engine.dispose()
            _SessionLocal = None
        _engine = _build_engine(database_url)
        _database_url = database_url
        logger.debug(
            "SQLAlchemy engine created",
            extra={"context": {"dialect": _engine.dialect.name}},
        )
    return _engine


def get_sessionmaker():
    """Return a cached sessionmaker bound to the lazy engine."""
    global _SessionLocal
    engine = get_engine()
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )
    return _SessionLocal


def SessionLocal():
    """Return a new Session bound to the current engine.

    Modules do `from elibrary.db.session import SessionLocal` and call
    `SessionLocal()` to open a unit of work.
    """
    return get_sessionmaker()()


def create_tables():
    """Create all tables in the database using the lazy engine."""
    # Import models so Base.metadata is populated
    from elibrary.db import base  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def drop_tables():
    from elibrary.db import base  # noqa: F401

    Base.metadata.drop_all(bind=get_engine())
