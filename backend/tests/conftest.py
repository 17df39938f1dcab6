# backend/tests/conftest.py

import json
from collections import defaultdict
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import insert
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spabooker.database import build_engine, get_db
from spabooker.models import Base
from spabooker.models.entities import (
    BlockedTimes,
    Clients,
    GiftCertificates,
    Locations,
    Rooms,
    RoomServiceCapabilities,
    Services,
    TherapistAvailability,
    Therapists,
    UserMemberships,
    t_therapist_services,
)
from spabooker.services import events
from spabooker.services.scheduling.policy import BookingPolicyConfig

from .factories import NOW, SHIFT_END, SHIFT_START, seeded_store


class FakeRedis:
    """Records list pushes instead of talking to a server."""

    def __init__(self):
        self.lists = defaultdict(list)

    def rpush(self, key, value):
        self.lists[key].append(value)
        return len(self.lists[key])

    def ping(self):
        return True

    def events(self) -> list[dict]:
        return [json.loads(raw) for raw in self.lists[events.P2P_QUEUE]]

    def event_types(self) -> list[str]:
        return [e["type"] for e in self.events()]


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> FakeRedis:
    fake = FakeRedis()
    monkeypatch.setattr(events, "redis_client", fake)
    return fake


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def policy() -> BookingPolicyConfig:
    return BookingPolicyConfig()


@pytest.fixture
def store():
    return seeded_store()


# ── Database ─────────────────────────────────────────────────────────────


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(db_engine):
    Session = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_db(db):
    """
    Location 1 with service 1 (100.00, credit-eligible) and service 2
    (80.00, not credit-eligible). Therapists 1 and 2 and rooms 1 and 2
    handle service 1; room 3 handles nothing. Both therapists work
    SHIFT_START to SHIFT_END every day. Client 1 holds 4 credits, gift
    certificate GIFT30 holds 30.00.
    """
    db.add(Locations(id=1, name="Downtown"))
    db.add(Locations(id=2, name="Uptown"))
    db.add(Clients(id=1, first_name="Ana", email="ana@example.com"))
    db.add(Services(id=1, location_id=1, name="Deep tissue", base_price=Decimal("100.00")))
    db.add(Services(
        id=2, location_id=1, name="Facial", base_price=Decimal("80.00"), credit_eligible=False,
    ))
    db.add(Services(id=3, location_id=1, name="Retired", base_price=Decimal("50.00"), is_active=False))
    db.add(Therapists(id=1, display_name="Mila"))
    db.add(Therapists(id=2, display_name="Oren"))
    db.add(Rooms(id=1, location_id=1, name="Lotus", display_order=1))
    db.add(Rooms(id=2, location_id=1, name="Cedar", display_order=2))
    db.add(Rooms(id=3, location_id=1, name="Storage", display_order=3))
    db.flush()

    db.add(RoomServiceCapabilities(room_id=1, service_id=1))
    db.add(RoomServiceCapabilities(room_id=2, service_id=1))
    db.execute(insert(t_therapist_services), [
        {"therapist_id": 1, "service_id": 1, "is_active": True},
        {"therapist_id": 2, "service_id": 1, "is_active": True},
    ])
    for therapist_id in (1, 2):
        for weekday in range(7):
            db.add(TherapistAvailability(
                therapist_id=therapist_id, day_of_week=weekday,
                start_time=SHIFT_START, end_time=SHIFT_END,
            ))
    db.add(UserMemberships(id=1, client_id=1, plan_name="Monthly", current_credits=Decimal("4.0")))
    db.add(GiftCertificates(
        code="GIFT30", original_amount=Decimal("30.00"), remaining_balance=Decimal("30.00"),
    ))
    db.commit()
    return db


@pytest.fixture
def block_day(seeded_db):
    """Add a BlockedTimes row and commit."""

    def _block(day: date, start, end, **fields):
        seeded_db.add(BlockedTimes(date=day, start_time=start, end_time=end, **fields))
        seeded_db.commit()

    return _block


# ── API ──────────────────────────────────────────────────────────────────


@pytest.fixture
def client(seeded_db, fake_redis, monkeypatch):
    from spabooker import main

    monkeypatch.setattr(main, "redis_client", fake_redis)

    def override_get_db():
        yield seeded_db

    main.app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
