"""
Database configuration for the storesync jobs.

Builds the SQLAlchemy engine and session factory on first use from
DATABASE_URL. Nothing connects at import time.
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker

from ..config.loader import get_database_url


class DatabaseConfig:
    """Lazily constructed engine and session factory."""

    _engine: Engine | None = None
    _session_factory: sessionmaker | None = None

    @classmethod
    def get_database_url(cls) -> str:
        """Get database URL from environment variables."""
        try:
            return get_database_url()
        except ValueError as e:
            raise ValueError(
                "DATABASE_URL environment variable is required. "
                "Copy .env.example to .env and set your connection string."
            ) from e

    @classmethod
    def get_engine(cls) -> Engine:
        """Get SQLAlchemy engine (created once per process)."""
        if cls._engine is None:
            cls._engine = create_engine(
                cls.get_database_url(),
                pool_size=5,
                max_overflow=5,
                pool_pre_ping=True,
                echo=False,  # Set to True for SQL debugging
            )
        return cls._engine

    @classmethod
    def get_session_factory(cls) -> sessionmaker:
        """Get session factory."""
        if cls._session_factory is None:
            cls._session_factory = sessionmaker(
                bind=cls.get_engine(),
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
            )
        return cls._session_factory

