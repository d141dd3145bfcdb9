import os

# Keep the module-level engine off the developer's database file
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import testseries.models  # noqa: F401
from testseries.database import Base, get_db, set_sqlite_pragma
from testseries.dependencies import get_clock
from testseries.services.authoring import AuthoringService

T0 = datetime(2026, 1, 5, 9, 0, 0)


class Clock:
    """Manually advanced clock handed to the lifecycle manager."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def option_id(question, key):
    """Id of the option with the given key."""
    return next(o["id"] for o in question.options_list if o["key"] == key)


@pytest.fixture
def engine(tmp_path):
    # File-backed so separate sessions get separate connections
    engine = create_engine(
        "sqlite:///{}".format(tmp_path / "testseries.db"),
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def authoring(db_session):
    return AuthoringService(db_session)


@pytest.fixture
def make_test(authoring):
    """
    Build a two-question test. Option key 2 is correct on both questions,
    key 1 is wrong. Defaults: +4 / -1, cut-off 50, so max_score is 8.
    """
    def _make(timing=30, positive_scoring=4, negative_scoring=1, cut_off=50):
        q1 = authoring.create_question(
            "2 + 2 = ?",
            [{"key": 1, "content": "3"}, {"key": 2, "content": "4"}],
            correct_answer=2,
            tags=["arithmetic"],
        )
        q2 = authoring.create_question(
            "3 * 3 = ?",
            [{"key": 1, "content": "6"}, {"key": 2, "content": "9"}],
            correct_answer=2,
            tags=["arithmetic"],
        )
        test = authoring.create_test(
            "Arithmetic basics",
            timing=timing,
            positive_scoring=positive_scoring,
            negative_scoring=negative_scoring,
            cut_off=cut_off,
            question_ids=[q1.id, q2.id],
        )
        return test, q1, q2

    return _make


@pytest.fixture
def client(session_factory, clock):
    from testseries.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def alice():
    return {"X-User-ID": "alice"}


@pytest.fixture
def bob():
    return {"X-User-ID": "bob"}
