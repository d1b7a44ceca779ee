"""
Pytest configuration and fixtures for ThoughtFolio tests.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from thoughtfolio import models  # noqa: F401
from thoughtfolio.ai.rate_limit import match_rate_limiter
from thoughtfolio.db import get_session
from thoughtfolio.main import app
from thoughtfolio.models import Moment, Thought, ThoughtStatus

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
def engine():
    """In-memory database shared by every session in a test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as ses:
        yield ses


@pytest.fixture
def client(engine):
    """API client authenticated as USER_ID"""

    def override_session():
        with Session(engine) as ses:
            yield ses

    app.dependency_overrides[get_session] = override_session
    match_rate_limiter.reset()
    yield TestClient(app, headers={"X-User-Id": USER_ID})
    app.dependency_overrides.clear()
    match_rate_limiter.reset()


@pytest.fixture
def anon_client(engine):
    def override_session():
        with Session(engine) as ses:
            yield ses

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_thought(session):
    def _make(content="Listen more than you speak", user_id=USER_ID, **kwargs):
        kwargs.setdefault("status", ThoughtStatus.PASSIVE)
        thought = Thought(user_id=user_id, content=content, **kwargs)
        session.add(thought)
        session.commit()
        session.refresh(thought)
        return thought

    return _make


@pytest.fixture
def make_moment(session):
    def _make(description="1:1 with my manager about career growth", user_id=USER_ID, **kwargs):
        moment = Moment(user_id=user_id, description=description, **kwargs)
        session.add(moment)
        session.commit()
        session.refresh(moment)
        return moment

    return _make
