"""
Shared pytest fixtures.

Jobs run against an in-memory SQLite database created fresh for each test.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storesync.config.loader import reload_config
from storesync.db.models import Base

TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Load the bundled config/app.yaml for every test."""
    monkeypatch.delenv("STORESYNC_CONFIG", raising=False)
    reload_config()
    yield
    reload_config()


@pytest.fixture
def db_session():
    """Session bound to a new in-memory database with all tables created."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    session = sessionmaker(bind=engine, expire_on_commit=False)()
    yield session

    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()
