"""
Pytest configuration and fixtures
"""
import os

# Settings are read at import time; tests never need a real database server
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-attendance-tests-only")
os.environ.setdefault("ATTENDANCE_TZ", "Asia/Kolkata")

from datetime import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.deps import get_db, get_notifier
from app.core.security import hash_password
from app.db.base import Base
from app.db.session import enable_sqlite_savepoints
from app.models import (
    AttendanceMachine,
    Branch,
    MachineStatus,
    Organization,
    ProviderType,
    Role,
    Shift,
)  # noqa
from app.services.notification_service import RecordingNotificationSink
from app.tests.factories import MACHINE_KEY, TEST_PASSWORD, make_employee


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture(scope="function")
def client(db, notifier):
    """Test client fixture with database and notification sink overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db):
    org = Organization(name="Acme Corp", active=True)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def other_organization(db):
    org = Organization(name="Other Corp", active=True)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def branch(db, organization):
    b = Branch(organization_id=organization.id, name="Head Office", active=True)
    db.add(b)
    db.commit()
    db.refresh(b)
    return b


@pytest.fixture
def day_shift(db, organization):
    """09:00-18:00, 15 min grace, 8h full day, 4h half-day threshold, Sunday off"""
    shift = Shift(
        organization_id=organization.id,
        name="General",
        start_time=time(9, 0),
        end_time=time(18, 0),
        grace_period_mins=15,
        full_day_hours=8,
        half_day_threshold_hours=4,
        is_night_shift=False,
        weekly_offs=[6],
    )
    db.add(shift)
    db.commit()
    db.refresh(shift)
    return shift


@pytest.fixture
def admin(db, organization):
    return make_employee(
        db, organization, "ADM001", role=Role.ADMIN,
        name="Admin User", password_hash=hash_password(TEST_PASSWORD),
    )


@pytest.fixture
def hr_user(db, organization):
    return make_employee(db, organization, "HR001", role=Role.HR, name="HR User")


@pytest.fixture
def manager(db, organization):
    return make_employee(db, organization, "MGR001", role=Role.MANAGER, name="Manager User")


@pytest.fixture
def employee(db, organization, manager):
    """Employee reporting to ``manager`` with device enrolment id 1001"""
    return make_employee(
        db, organization, "EMP001",
        name="Regular Employee",
        reporting_manager_id=manager.id,
        machine_user_id="1001",
        password_hash=hash_password(TEST_PASSWORD),
    )


@pytest.fixture
def machine(db, organization):
    m = AttendanceMachine(
        name="Main Gate",
        serial_number="SN-0001",
        provider_type=ProviderType.GENERIC,
        organization_id=organization.id,
        api_key=MACHINE_KEY,
        status=MachineStatus.ACTIVE,
        timezone="Asia/Kolkata",
        sync_count=0,
        total_logs=0,
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return m
