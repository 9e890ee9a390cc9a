import os

# Settings are read at import time: point everything at throwaway config first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["VAPID_PUBLIC_KEY"] = ""
os.environ["VAPID_PRIVATE_KEY"] = ""
os.environ["QUIET_HOURS_ZERO_LENGTH"] = "always"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from blognotify.db.base import Base
from blognotify.models import Notification, NotificationSettings, PushSubscription, User  # noqa: F401
from blognotify.services.deferred import InlineDeferredTasks, set_deferred
from blognotify.services.push import PushResult


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def deferred():
    runner = InlineDeferredTasks()
    set_deferred(runner)
    yield runner
    set_deferred(None)


class Outbox:
    """Records email/push sends instead of talking to SMTP or a push service."""

    def __init__(self):
        self.emails = []
        self.digests = []
        self.pushes = []
        self.push_result = PushResult.SENT

    def send_email(self, to_email, title, body=None, link=None):
        self.emails.append({"to": to_email, "title": title, "body": body, "link": link})
        return True

    def send_digest(self, to_email, name, items, cadence):
        self.digests.append({"to": to_email, "name": name, "items": items, "cadence": cadence})
        return True

    def send_push(self, endpoint, urgency="normal", topic=None):
        self.pushes.append({"endpoint": endpoint, "urgency": urgency, "topic": topic})
        return self.push_result


@pytest.fixture
def outbox(monkeypatch, deferred):
    box = Outbox()
    monkeypatch.setattr("blognotify.services.dispatch.send_notification_email", box.send_email)
    monkeypatch.setattr("blognotify.services.dispatch.send_web_push", box.send_push)
    monkeypatch.setattr("blognotify.services.digest_service.send_digest_email", box.send_digest)
    monkeypatch.setattr("blognotify.services.digest_service.send_web_push", box.send_push)
    return box


@pytest.fixture
def make_user(db):
    def _make(username, email=None, status="active", role="user", display_name=None):
        user = User(
            username=username,
            email=email if email is not None else f"{username}@example.com",
            status=status,
            role=role,
            display_name=display_name,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(session_factory, outbox):
    from fastapi.testclient import TestClient

    from blognotify.db.session import get_db
    from blognotify.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
