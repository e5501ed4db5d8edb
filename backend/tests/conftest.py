import os

# The app module builds its engine at import time; keep it off any real database.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campsched.api.deps import get_db
from campsched.db.base import Base
from campsched.main import app
from campsched.models.user import User, UserRole
from campsched.services.camp_config import CampConfig, parse_divisions, parse_resource
from campsched.services.rate_limit import clear_rate_limiter
from campsched.services.time_grid import parse_time_to_minutes


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    clear_rate_limiter()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_rate_limiter()


@pytest.fixture()
def make_user(session_factory):
    def _make(name: str, role: UserRole, divisions=()) -> str:
        db = session_factory()
        try:
            user = User(name=name, role=role, divisions=list(divisions))
            db.add(user)
            db.commit()
            return user.id
        finally:
            db.close()

    return _make


@pytest.fixture()
def camp_config():
    """Build a CampConfig from plain dicts, the way camp settings are stored."""

    def _build(
        divisions: dict[str, list[str]],
        resources: dict[str, dict],
        *,
        slot_minutes: int = 30,
        day_start: str = "9:00 am",
        day_end: str = "12:00 pm",
        frequency_threshold: int = 3,
    ) -> CampConfig:
        return CampConfig(
            divisions=parse_divisions({name: {"bunks": bunks} for name, bunks in divisions.items()}),
            resources={name: parse_resource(name, raw) for name, raw in resources.items()},
            slot_minutes=slot_minutes,
            day_start=parse_time_to_minutes(day_start),
            day_end=parse_time_to_minutes(day_end),
            frequency_threshold=frequency_threshold,
        )

    return _build
