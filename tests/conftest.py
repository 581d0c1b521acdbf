"""
Shared fixtures.

The suite runs against an in-memory SQLite database built from the models;
the PostgreSQL-only exclusion constraint is skipped there and the row lock
path in ConflictGuard carries the overlap checks.
"""
import os

from cryptography.fernet import Fernet

os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["REMINDER_API_KEY"] = "test-reminder-key"
os.environ["DEFAULT_TIMEZONE"] = "Europe/London"
os.environ.setdefault("CALENDAR_ENCRYPTION_KEY", Fernet.generate_key().decode())

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import Base  # noqa: E402
from app.services.email.email_service import SendResult  # noqa: E402
from app.utils.time_utils import FrozenClock  # noqa: E402
from tests.factories import NOW, create_practitioner  # noqa: E402


class FakeSender:
    """Records notifications instead of sending them"""

    def __init__(self):
        self.sent = []
        self.failing = set()
        self.raising = set()

    def send(self, to, subject, body):
        if to in self.raising:
            raise ConnectionRefusedError(111, "Connection refused")
        if to in self.failing:
            return SendResult(success=False, error="550 mailbox unavailable")
        self.sent.append((to, subject, body))
        return SendResult(success=True)

    def to(self, address):
        return [message for message in self.sent if message[0] == address]

    def subjects(self, address):
        return [subject for to, subject, _ in self.sent if to == address]


class QueuedTasks:
    """Records Celery `.delay` calls so no test talks to a broker"""

    def __init__(self):
        self.calls = []

    def recorder(self, name):
        return lambda *args: self.calls.append((name, args))

    def named(self, name):
        return [args for task, args in self.calls if task == name]


@pytest.fixture(autouse=True)
def queued(monkeypatch):
    from app.tasks import calendar_tasks, email_tasks

    tasks = QueuedTasks()
    monkeypatch.setattr(email_tasks.send_notification_email, "delay", tasks.recorder("send_notification_email"))
    monkeypatch.setattr(calendar_tasks.push_booking_to_calendars, "delay", tasks.recorder("push_booking_to_calendars"))
    monkeypatch.setattr(
        calendar_tasks.sync_practitioner_busy_times, "delay", tasks.recorder("sync_practitioner_busy_times")
    )
    return tasks


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def practitioner(db):
    return create_practitioner(db)


@pytest.fixture
def client(db, clock, sender):
    from app.api.v1.dashboard.availability import get_busy_time_sync
    from app.config.database import get_db
    from app.main import app
    from app.services.calendar.busy_time_sync import BusyTimeSyncService
    from app.services.email.email_service import get_notification_sender, get_reminder_sender
    from app.utils.time_utils import get_clock

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_sender] = lambda: sender
    app.dependency_overrides[get_reminder_sender] = lambda: sender
    app.dependency_overrides[get_busy_time_sync] = lambda: BusyTimeSyncService(db, clock, providers={})

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_token(practitioner_id, token_type="access", secret="test-jwt-secret"):
    payload = {
        "sub": str(practitioner_id),
        "type": token_type,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_headers(practitioner):
    return {"Authorization": f"Bearer {make_token(practitioner.id)}"}
