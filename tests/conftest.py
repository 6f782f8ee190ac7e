"""
tests/conftest.py

Shared fixtures: an in-memory database, local storage under tmp_path, and a
seeded event.
"""

from __future__ import annotations

import os

# Must be set before app.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.models import Event, GlobalSettings
from app.services.storage import LocalStorage
from tests.helpers import COLLECTION


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def public_root(tmp_path) -> str:
    root = tmp_path / "public"
    root.mkdir()
    return str(root)


@pytest.fixture
def storage(public_root) -> LocalStorage:
    return LocalStorage(public_root)


@pytest.fixture
def pipeline_options(public_root) -> dict:
    return {"collection": COLLECTION, "public_root": public_root, "fetch_timeout": 1.0}


@pytest.fixture
def event(db) -> Event:
    ev = Event(name="Wedding Night", slug="wedding-night-2026", short_hash="xyz123")
    db.add(ev)
    db.commit()
    db.refresh(ev)
    return ev


@pytest.fixture
def global_settings(db) -> GlobalSettings:
    row = GlobalSettings(id=1, jpeg_quality=80, thumb_quality=60)
    db.add(row)
    db.commit()
    return row
