#proof_engine\infrastructure\postgres\database.py

"""SQLAlchemy database setup and session management."""

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from proof_engine.infrastructure.postgres.config import (
    DatabaseSettings,
    get_database_settings,
)


# ============================================
# Base for ORM models
# ============================================
Base = declarative_base()


# ============================================
# Engine configuration
# ============================================
def create_db_engine(
    database_url: Optional[str] = None,
    settings: Optional[DatabaseSettings] = None,
) -> Engine:
    """Create SQLAlchemy engine with connection pooling."""

    settings = settings or get_database_settings()
    url = database_url or settings.database_url

    engine = create_engine(
        url,
        echo=settings.echo_sql,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
    )

    # Set PostgreSQL-specific settings
    @event.listens_for(engine, "connect")
    def set_search_path(dbapi_conn, connection_record):
        """Set default schema on connect."""
        cursor = dbapi_conn.cursor()
        cursor.execute("SET search_path TO public")
        cursor.close()

    return engine


# ============================================
# Session factory function
# ============================================
def get_session_factory(engine_instance: Engine) -> sessionmaker:
    """
    Get a session factory bound to the given engine.

    Tests pass their own engine here.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine_instance,
        expire_on_commit=False
    )


# ============================================
# Database initialization
# ============================================
def init_db(engine_instance: Engine) -> None:
    """Create all tables (for testing only - use Alembic in production)."""
    # Register tables on Base.metadata
    from proof_engine.infrastructure.postgres import models  # noqa: F401

    Base.metadata.create_all(bind=engine_instance)


def drop_db(engine_instance: Engine) -> None:
    """Drop all tables (for testing only)."""
    Base.metadata.drop_all(bind=engine_instance)
