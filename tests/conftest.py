import os

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
# In memory, so startup init_db() leaves no database file behind
os.environ["TEST_DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import Base, get_db, get_redis
from app.core.security import UserRole, create_token_pair, get_password_hash
from app.models.user import User
from app.models.doctor import Doctor, MedicalSpecialty, TimeSlot

# Single in-memory database shared by the test session and request sessions
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "Password123"
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

# Fixed "now" for service-level tests; 2030-01-07 is a Monday
FIXED_NOW = datetime(2030, 1, 1, 8, 0)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)

class InMemoryRedis:
    """Stores rate limit counters in a dict for the duration of a test."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = str(value)
        return True

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

def upcoming(day_of_week: int, weeks_ahead: int = 1) -> date:
    """First date at least ``weeks_ahead`` weeks from today on the given weekday (0 = Sunday)."""
    day = date.today() + timedelta(weeks=weeks_ahead)
    while day.isoweekday() % 7 != day_of_week:
        day += timedelta(days=1)
    return day

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def redis_stub():
    return InMemoryRedis()

@pytest.fixture
def client(db_session, redis_stub):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_stub
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()

@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(role=UserRole.PATIENT, first_name="Test", last_name="User", is_active=True, email=None):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value}{counter['n']}@example.com",
            password_hash=TEST_PASSWORD_HASH,
            first_name=first_name,
            last_name=last_name,
            phone="555-0100",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user

@pytest.fixture
def make_doctor(db_session, make_user):
    """Doctor with a specialty and weekly slots given as (day_of_week, start, end)."""

    def _make_doctor(
        slots=((1, time(9, 0), time(17, 0)),),
        duration_minutes=30,
        is_available=True,
        user_active=True,
        fee=Decimal("75.00"),
    ):
        user = make_user(UserRole.DOCTOR, first_name="Greg", last_name="House", is_active=user_active)
        specialty = None
        if duration_minutes is not None:
            specialty = MedicalSpecialty(
                name=f"Specialty {user.id}",
                duration_minutes=duration_minutes,
            )
            db_session.add(specialty)
            db_session.flush()

        doctor = Doctor(
            user_id=user.id,
            specialty_id=specialty.id if specialty else None,
            consultation_fee=fee,
            is_available=is_available,
        )
        db_session.add(doctor)
        db_session.flush()

        for day_of_week, start, end in slots:
            db_session.add(TimeSlot(doctor_id=doctor.id, day_of_week=day_of_week, start_time=start, end_time=end))

        db_session.commit()
        db_session.refresh(doctor)
        return doctor

    return _make_doctor

@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        token = create_token_pair(user.id, user.email, user.role).access_token
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
