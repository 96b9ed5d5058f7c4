"""
Shared test fixtures for the QMStats test suite.

Async throughout: aiosqlite + AsyncSession, httpx AsyncClient on the ASGI app.
"""

import os
import sys
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["ADMIN_EMAILS"] = '["admin@example.com"]'
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-for-hs256"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from qmstats.api.v1.deps import get_db
from qmstats.api.v1.endpoints.auth import limiter
from qmstats.core.config import settings
from qmstats.core.security import create_access_token, get_password_hash
from qmstats.db.base import Base
from qmstats.main import app
from qmstats.models.user import User
from qmstats.services.live_updates import LiveUpdateRegistry

TEST_PASSWORD = "secret123"
_TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test and drop them after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db
limiter.enabled = False


# ── App-scoped service fakes ────────────────────────────────────────
class RecordingMailer:
    """Stands in for the SMTP mailer; keeps every message in ``sent``."""

    def __init__(self):
        self.sent = []

    async def send(self, to, subject, body, attachments=None):
        self.sent.append(
            {"to": to, "subject": subject, "body": body, "attachments": list(attachments or [])}
        )


@pytest.fixture(autouse=True)
def mailer() -> RecordingMailer:
    fake = RecordingMailer()
    app.state.mailer = fake
    return fake


@pytest.fixture(autouse=True)
def live_updates() -> LiveUpdateRegistry:
    registry = LiveUpdateRegistry(settings.SSE_QUEUE_SIZE)
    app.state.live_updates = registry
    return registry


# ── Clients & sessions ──────────────────────────────────────────────
@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


# ── Users & auth ────────────────────────────────────────────────────
@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: ``await make_user("a@x.com", "Ann", "Lee", leader=other)``."""

    async def _make(email, first_name="Test", surname="User", leader=None):
        user = User(
            email=email.lower(),
            hashed_password=_TEST_PASSWORD_HASH,
            first_name=first_name,
            surname=surname,
            team_leader_user_id=leader.id if leader is not None else None,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("admin@example.com", "Ada", "Admin")


# ── Payloads ────────────────────────────────────────────────────────
@pytest.fixture
def stat_payload():
    """Factory for a valid stat body; keyword overrides replace top-level keys."""

    def _payload(stat_id, date="2024-03-01", start="09:00", end="10:00", **overrides):
        body = {
            "id": stat_id,
            "date": date,
            "startTime": start,
            "endTime": end,
            "mailOpening": {
                "totalEnvelopes": 20,
                "fileCreation": 5,
                "urgentFileCreation": 1,
                "attachment": 4,
                "urgentAttachment": 2,
                "rejects": 3,
                "wrongMail": 1,
                "withdrawLetter": 0,
            },
            "fileCreationRows": [],
            "attachmentsRows": [],
            "rejectRows": [],
            "processed": {"tlCount": 0},
        }
        body.update(overrides)
        return body

    return _payload


def _fc(row_index, value, category="individual", urgency="regular", **checks):
    return {
        "category": category,
        "urgency": urgency,
        "groupIndex": 0 if category == "family" else None,
        "rowIndex": row_index,
        "value": value,
        "checks": checks,
    }


@pytest.fixture
async def seeded(async_client: AsyncClient, make_user, auth_headers, stat_payload):
    """Two owners (one with a team leader) and four stats across three days.

    Stat 1 carries every kind of child row; stats 2-4 have none.
    """
    leader = await make_user("lead@corp.example", "Lena", "Leader")
    ann = await make_user("ann@client.example", "Ann", "Lee", leader=leader)
    bob = await make_user("bob_x@other.example", "Bob", "Stone")

    bodies = [
        (ann, stat_payload(
            1, date="2024-03-01", start="09:00", end="10:00",
            fileCreationRows=[
                _fc(0, 10, natp=True),
                _fc(1, 0, natp=True),
                _fc(2, 11, urgency="urgent"),
                _fc(0, 12, category="family", coi=True),
                _fc(1, 13, category="family", urgency="urgent", none=True),
            ],
            attachmentsRows=[
                {"urgency": "regular", "rowIndex": 0, "value": 5, "checks": {"rtd": True}},
                {"urgency": "urgent", "rowIndex": 0, "value": 6},
                {"urgency": "urgent", "rowIndex": 1, "value": 0},
            ],
            rejectRows=[
                {"rowIndex": 0, "value": 7, "checks": {"natp": True}, "reasons": ["Fees", "No date"]},
                {"rowIndex": 1, "value": 0, "reasons": []},
            ],
        )),
        (ann, stat_payload(2, date="2024-03-02", start="08:00", end="09:00")),
        (ann, stat_payload(3, date="2024-03-02", start="13:00", end="14:00")),
        (bob, stat_payload(4, date="2024-03-03", start="09:00", end="10:00")),
    ]
    for owner, body in bodies:
        resp = await async_client.post("/api/stats", json=body, headers=auth_headers(owner))
        assert resp.status_code == 201
    return {"leader": leader, "ann": ann, "bob": bob}
