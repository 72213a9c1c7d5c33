"""Shared fixtures: file-backed SQLite per test, controllable clock, manager, API client."""

import json
from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from medislot.database import init_db, make_engine, make_session_factory
from medislot.models.tables import Availability, Doctors
from medislot.services.reservations import ReservationManager
from medislot.services.slots import BookingConfig

# Monday 08:00; DAY is the next day
NOW = datetime(2030, 1, 7, 8, 0)
DAY = date(2030, 1, 8)
VIDEO_SLOTS = ["10:00", "10:30", "11:00"]
HOME_SLOTS = ["14:00"]

PATIENT = {"X-User-ID": "patient-1"}
OTHER_PATIENT = {"X-User-ID": "patient-2"}
ADMIN = {"X-User-ID": "admin-1", "X-User-Role": "admin"}


class FakeClock:
    """Callable clock the tests move forward by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def config():
    return BookingConfig(
        hold_ttl_seconds=600,
        lock_timeout_seconds=5.0,
        min_advance_minutes=120,
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'medislot.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def doctor_id(session_factory):
    """Active doctor offering video slots and one home visit on DAY."""
    with session_factory() as db:
        doctor = Doctors(name="Dr. Nino Beridze", specialization="Cardiology", consultation_fee=50)
        db.add(doctor)
        db.flush()
        db.add_all([
            Availability(doctor_id=doctor.id, date=DAY, type="video", time_slots=json.dumps(VIDEO_SLOTS)),
            Availability(doctor_id=doctor.id, date=DAY, type="home-visit", time_slots=json.dumps(HOME_SLOTS)),
        ])
        db.commit()
        return doctor.id


@pytest.fixture
def manager(session_factory, config, clock):
    return ReservationManager(session_factory, config, clock=clock)


@pytest.fixture
def client(session_factory, config, clock):
    """API client without Redis and without the background sweeper."""
    from medislot.config import Settings
    from medislot.main import create_app

    settings = Settings(redis_url=None, sweeper_enabled=False)
    app = create_app(
        settings=settings,
        session_factory=session_factory,
        config=config,
        clock=clock,
    )
    return TestClient(app)
