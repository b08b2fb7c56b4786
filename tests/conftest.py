import itertools
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from irepair.main import app
from irepair.core.clock import get_clock
from irepair.db.base import Base, get_db
from irepair.db.models.shop import Shop
from irepair.db.models.technician import Technician
from irepair.db.models.user import User

# Monday 2026-10-19 08:00 in Manila
NOW = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)
# Tuesday 2026-10-20 10:30 in Manila
TUESDAY_1030 = datetime(2026, 10, 20, 2, 30, tzinfo=timezone.utc)

MANILA = (14.5995, 120.9842)

_ids = itertools.count(1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def client(db, clock):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(**kwargs):
        n = next(_ids)
        data = dict(
            email=f"user{n}@example.com",
            username=f"user{n}",
            phone="09171234567",
            address="Ermita, Manila",
            latitude=MANILA[0],
            longitude=MANILA[1],
        )
        data.update(kwargs)
        user = User(**data)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_technician(db):
    def _make(**kwargs):
        n = next(_ids)
        data = dict(
            username=f"tech{n}",
            full_name=f"Technician {n}",
            phone="09181234567",
            address="Malate, Manila",
            latitude=MANILA[0] + 0.01,
            longitude=MANILA[1],
            categories=["Smartphone"],
            type="freelance",
            working_days=["Mon", "Tue", "Wed", "Thu", "Fri", "Sat"],
            working_hours={"startTime": "08:00", "endTime": "17:00"},
            status="approved",
        )
        data.update(kwargs)
        technician = Technician(**data)
        db.add(technician)
        db.commit()
        db.refresh(technician)
        return technician

    return _make


@pytest.fixture
def make_shop(db):
    def _make(technician, **kwargs):
        data = dict(
            technician_id=technician.id,
            name="FixIt Shop",
            address="Quiapo, Manila",
            working_days=["Sat", "Sun"],
            working_hours="10:00 AM - 6:00 PM",
        )
        data.update(kwargs)
        shop = Shop(**data)
        db.add(shop)
        db.commit()
        db.refresh(technician)
        return shop

    return _make
