from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import chronicle.db.init_db as db_init
import chronicle.db.session as db_session
from chronicle.api.main import app
from chronicle.core.ledger.dispatcher import dispatch
from chronicle.core.ledger.events import EventIn, EventType
from chronicle.core.rules.registry import build_registry
from chronicle.db.base import Base
from chronicle.db.deps import get_db
from chronicle.db.init_db import seed_conditions


class FixedDice:
    """Dice stub: hands out the given values in order."""

    def __init__(self, *values: int) -> None:
        self.values = list(values)

    def randint(self, a: int, b: int) -> int:
        assert self.values, "FixedDice ran out of values"
        value = self.values.pop(0)
        assert a <= value <= b, f"{value} outside {a}..{b}"
        return value


@pytest.fixture()
def fixed_dice():
    return FixedDice


@pytest.fixture()
def engine():
    # one in-memory database per test
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    db_session.enable_sqlite_foreign_keys(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def TestingSessionLocal(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture(autouse=True)
def _patch_db(engine, TestingSessionLocal, monkeypatch):
    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "SessionLocal", TestingSessionLocal)
    monkeypatch.setattr(db_init, "engine", engine)


@pytest.fixture()
def registry():
    return build_registry()


@pytest.fixture()
def db(TestingSessionLocal, registry):
    session = TestingSessionLocal()
    seed_conditions(session, registry)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(TestingSessionLocal):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_world(db):
    def _make(title="Arton", description="Continente de Arton"):
        world_id = str(uuid.uuid4())
        dispatch(
            db,
            EventIn(
                type=EventType.WORLD_CREATED,
                world_id=world_id,
                entity_id=world_id,
                payload={"title": title, "description": description},
            ),
        )
        return world_id

    return _make


@pytest.fixture()
def make_campaign(db):
    def _make(world_id, name="Saga"):
        campaign_id = str(uuid.uuid4())
        dispatch(
            db,
            EventIn(
                type=EventType.CAMPAIGN_CREATED,
                world_id=world_id,
                campaign_id=campaign_id,
                entity_id=campaign_id,
                payload={"name": name},
            ),
        )
        return campaign_id

    return _make


@pytest.fixture()
def make_character(db):
    def _make(world_id, campaign_id, name, sheet=None):
        character_id = str(uuid.uuid4())
        dispatch(
            db,
            EventIn(
                type=EventType.CHARACTER_CREATED,
                world_id=world_id,
                campaign_id=campaign_id,
                entity_id=character_id,
                payload={"name": name, "sheet": sheet or {}},
            ),
        )
        return character_id

    return _make
