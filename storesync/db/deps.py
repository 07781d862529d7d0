"""
Database session management for the storesync jobs.

Provides the context manager every job uses to acquire its store handle.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from .config import DatabaseConfig
from .models import Base


@contextmanager
def get_session(factory: sessionmaker | None = None) -> Generator[Session, None, None]:
    """
    Context manager that yields a database session and ensures proper cleanup.

    Automatically handles:
    - Session creation
    - Transaction commit on success
    - Rollback on exception
    - Session cleanup

    Jobs commit once per page themselves; the final commit here only flushes
    whatever the last page left pending.

    Usage:
        with get_session() as session:
            run_order_sync(session=session)
    """
    session = (factory or DatabaseConfig.get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=DatabaseConfig.get_engine())
