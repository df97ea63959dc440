"""
Pytest Configuration and Fixtures.

Provides an in-memory SQLite database with the planner schema, the two
repositories bound to a test user, and a clock that advances one second
per reading so every write gets a distinct timestamp.
"""
import pytest
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from study_cycle.models import Subject
from study_cycle.crud import CycleStore, SubjectRegistry
from study_cycle.database import Base
from study_cycle.schemas import SubjectCreate
from study_cycle.synchronizer import Synchronizer

USER_ID = "test-user"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.path):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.path):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.path):
            item.add_marker(pytest.mark.smoke)


class StepClock:
    """Deterministic clock: each call returns a time one second after the last."""

    def __init__(self, start=datetime(2026, 3, 2, 8, 0, 0)):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(seconds=1)
        return value


def make_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def engine():
    """Empty in-memory database with every table created."""
    engine = make_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def registry(db, clock):
    return SubjectRegistry(db, USER_ID, clock=clock)


@pytest.fixture
def store(db, clock):
    return CycleStore(db, USER_ID, clock=clock)


@pytest.fixture
def synchronizer(registry, store):
    return Synchronizer(registry, store)


@pytest.fixture
def add_subject(registry):
    """Factory registering a subject with sensible defaults."""
    def _add(name, frequency=1, hours=1.0, notebook_url=""):
        return registry.add_subject(SubjectCreate(
            name=name,
            notebook_url=notebook_url,
            total_hours=hours,
            frequency=frequency,
        ))
    return _add


LEGACY_CYCLE_TABLE = """
CREATE TABLE cycle_items (
    id VARCHAR PRIMARY KEY,
    user_id VARCHAR NOT NULL,
    subject_id VARCHAR NOT NULL,
    name VARCHAR NOT NULL,
    notebook_url VARCHAR,
    hours_per_session FLOAT NOT NULL,
    completed BOOLEAN NOT NULL,
    created_at DATETIME NOT NULL,
    correct INTEGER NOT NULL,
    wrong INTEGER NOT NULL
)
"""


@pytest.fixture
def legacy_db():
    """Database whose cycle_items table lacks completed_at and history."""
    engine = make_engine()
    Subject.__table__.create(bind=engine)
    with engine.begin() as conn:
        conn.execute(text(LEGACY_CYCLE_TABLE))
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def legacy(legacy_db):
    """Registry and store over the legacy schema."""
    clock = StepClock()
    return SubjectRegistry(legacy_db, USER_ID, clock=clock), CycleStore(legacy_db, USER_ID, clock=clock)
