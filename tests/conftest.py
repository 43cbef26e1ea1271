"""
Pytest fixtures: a fresh in-memory SQLite database per test, a TestClient
wired to it, and seed data for houses and affiliates.

Services commit their own audit log rows and roll back failed conversion
inserts, so each test gets its own engine instead of sharing one outer
transaction.
"""
import os
from decimal import Decimal

os.environ.setdefault("ENV", "test")
os.environ.setdefault("SYNC_SCHEDULER_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from betlink import models  # noqa: F401  (registers models on Base)
from betlink.db import Base, get_db
from betlink.main import app
from betlink.models import AffiliateLink, BettingHouse, User
from betlink.services.api_sync import ApiSyncService
from betlink.workers.sync_scheduler import SyncScheduler


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sync_service(session_factory):
    return ApiSyncService(session_factory=session_factory)


@pytest.fixture
def scheduler(session_factory, sync_service):
    return SyncScheduler(sync_service=sync_service, session_factory=session_factory)


@pytest.fixture
def client(session_factory, scheduler):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.sync_scheduler = scheduler
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.sync_scheduler = None


@pytest.fixture
def affiliate(db):
    user = User(username="aff_joao", email="joao@example.com", full_name="Joao Affiliate")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_house(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = dict(
            identifier=f"house{counter['n']}",
            name=f"House {counter['n']}",
            commission_type="CPA",
            cpa_value=Decimal("150.00"),
            cpa_affiliate_percent=Decimal("70"),
            min_deposit=Decimal("50.00"),
            integration_type="postback",
            security_token="secret-token",
        )
        fields.update(overrides)
        house = BettingHouse(**fields)
        db.add(house)
        db.commit()
        db.refresh(house)
        return house

    return _make


@pytest.fixture
def cpa_house(make_house):
    return make_house(identifier="betwin", name="BetWin")


@pytest.fixture
def revshare_house(make_house):
    return make_house(
        identifier="luckybet",
        name="LuckyBet",
        commission_type="RevShare",
        cpa_value=None,
        cpa_affiliate_percent=None,
        revshare_value=Decimal("35"),
        revshare_affiliate_percent=Decimal("20"),
    )


API_CONFIG = {
    "api": {
        "base_url": "https://api.house.test",
        "auth_type": "bearer",
        "api_key": "key-123",
    }
}


@pytest.fixture
def api_house(make_house):
    return make_house(
        identifier="apibet",
        name="ApiBet",
        integration_type="api",
        api_config=API_CONFIG,
        sync_interval=15,
    )


@pytest.fixture
def link(db, affiliate, api_house):
    link = AffiliateLink(
        user_id=affiliate.id,
        house_id=api_house.id,
        generated_url="https://apibet.test/?ref=aff_joao",
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    return link
