"""
Pytest configuration and shared fixtures.

Fixtures available to all tests:
  • db                : fresh in-memory schema per test
  • user / auth_headers: an active admin and its bearer header
  • google            : FakeGoogle, scripted Google HTTP responses
  • calendar_sync     : GoogleCalendarSync wired to the fake, no real sleeping
  • client            : TestClient with the calendar dependency overridden
  • connect_calendar  : store a connected Google Calendar integration
"""

import os

# Must be set before anything imports shootdesk.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["GOOGLE_WEBHOOK_URL"] = "https://api.example.com/integrations/google-calendar/webhook"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import datetime, time, timedelta  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from shootdesk import models_google_calendar  # noqa: E402, F401
from shootdesk.database import Base, SessionLocal, engine, get_db  # noqa: E402
from shootdesk.domain.integrations.repository import (  # noqa: E402
    DEFAULT_CALENDAR_SETTINGS,
    GOOGLE_CALENDAR,
    IntegrationRepository,
)
from shootdesk.main import app  # noqa: E402
from shootdesk.models import Client, PostIdea, Shoot, User  # noqa: E402
from shootdesk.security_utils import create_jwt_token, hash_password  # noqa: E402
from shootdesk.services.google_calendar_sync import GoogleCalendarSync, get_calendar_sync  # noqa: E402

EVENTS_PATH = "/calendar/v3/calendars/primary/events"
TOKEN_PATH = "/token"


class FakeGoogle:
    """
    Scripted Google endpoints keyed by (method, path).
    Queued responses are served in order; the last one repeats.
    Unknown routes answer a Google-style 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method: str, path: str, status: int = 200, json=None):
        self.routes.setdefault((method, path), []).append((status, json))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found"}})
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(body):
            body = body(request)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


async def no_sleep(_delay):
    return None


def google_error(status: int, message: str = "error", reason: str = None) -> dict:
    error = {"code": status, "message": message}
    if reason:
        error["errors"] = [{"reason": reason, "message": message}]
    return {"error": error}


def event_at(event_id: str, start: datetime, minutes: int = 60, **extra) -> dict:
    """A timed Google event resource starting at a naive-UTC datetime"""
    end = start + timedelta(minutes=minutes)
    event = {
        "id": event_id,
        "status": "confirmed",
        "summary": extra.pop("summary", f"Event {event_id}"),
        "start": {"dateTime": start.isoformat() + "Z"},
        "end": {"dateTime": end.isoformat() + "Z"},
        "etag": f'"{event_id}-etag"',
        "updated": "2026-01-01T00:00:00.000Z",
        "htmlLink": f"https://calendar.google.com/event?eid={event_id}",
    }
    event.update(extra)
    return event


def tomorrow_at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(datetime.utcnow().date() + timedelta(days=1), time(hour, minute))


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    user = User(
        email="producer@example.com",
        name="Sam Producer",
        password_hash=hash_password("correct-horse"),
        role="admin",
        status="active",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_jwt_token({'sub': user.email})}"}


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
def calendar_sync(db, google):
    return GoogleCalendarSync(db, transport=google.transport, sleep=no_sleep)


@pytest.fixture
def client(db, google):
    def _calendar_sync_override(session: Session = Depends(get_db)):
        return GoogleCalendarSync(session, transport=google.transport, sleep=no_sleep)

    app.dependency_overrides[get_calendar_sync] = _calendar_sync_override
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def connect_calendar(db, user):
    def _connect(expiry_date=None, refresh_token="refresh-1", email=None):
        return IntegrationRepository.upsert_integration(
            db,
            email or user.email,
            GOOGLE_CALENDAR,
            access_token="access-1",
            refresh_token=refresh_token,
            connected=True,
            connected_email="studio@gmail.com",
            expiry_date=expiry_date or datetime.utcnow() + timedelta(hours=1),
            settings=dict(DEFAULT_CALENDAR_SETTINGS),
        )

    return _connect


@pytest.fixture
def brand(db):
    client = Client(name="Acme Coffee", primary_contact_email="hello@acme.test")
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


@pytest.fixture
def make_shoot(db, brand):
    def _make(start: datetime = None, duration: int = 60, **extra):
        shoot = Shoot(
            title=extra.pop("title", "Morning latte shoot"),
            client_id=extra.pop("client_id", brand.id),
            scheduled_at=start or tomorrow_at(9),
            duration=duration,
            location=extra.pop("location", "Acme Roastery"),
            **extra,
        )
        db.add(shoot)
        db.commit()
        db.refresh(shoot)
        return shoot

    return _make


@pytest.fixture
def make_post(db, brand):
    def _make(title: str = "Latte art reel", **extra):
        post = PostIdea(
            client_id=extra.pop("client_id", brand.id),
            title=title,
            platforms=extra.pop("platforms", ["instagram"]),
            content_type=extra.pop("content_type", "reel"),
            shot_list=extra.pop("shot_list", ["Pour close-up", "Finished cup"]),
            **extra,
        )
        db.add(post)
        db.commit()
        db.refresh(post)
        return post

    return _make
