"""Shared test fixtures."""

import asyncio
import datetime as dt

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from guide_match.api.app import app
from guide_match.api.deps import get_db, get_fanout, get_token_codec
from guide_match.matching.arbiter import SelectionArbiter
from guide_match.models.base import Base
from guide_match.models.student import Student
from guide_match.models.tourist_request import TouristRequest
from guide_match.notifications.fanout import NotificationFanout
from guide_match.reviews.scorer import ReliabilityScorer
from guide_match.tokens.codec import TokenCodec

TEST_SECRET = "test-secret-with-at-least-32-characters!"
REQUEST_ID = "req-lisbon-1"
STUDENT_IDS = ("stu-ana", "stu-bruno", "stu-carla")


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, moment: dt.datetime) -> None:
        self.moment = moment

    def now(self) -> dt.datetime:
        return self.moment

    def advance(self, **kwargs) -> None:
        self.moment += dt.timedelta(**kwargs)


class RecordingSender:
    """EmailSender that remembers (student_id, outcome) pairs."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, selection, outcome: str) -> None:
        self.sent.append((selection.student_id, outcome))


class FailingSender:
    async def send(self, selection, outcome: str) -> None:
        raise ConnectionError("smtp relay unavailable")


class HangingSender:
    """EmailSender whose relay never answers."""

    async def send(self, selection, outcome: str) -> None:
        await asyncio.Event().wait()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc))


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(TEST_SECRET, clock=clock)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def fanout(sender) -> NotificationFanout:
    return NotificationFanout(sender)


@pytest.fixture
def arbiter(fanout, clock) -> SelectionArbiter:
    return SelectionArbiter(fanout, clock=clock, timeout_seconds=10.0)


@pytest.fixture
def scorer(clock) -> ReliabilityScorer:
    return ReliabilityScorer(clock=clock, timeout_seconds=10.0)


@pytest.fixture
async def test_engine():
    """Create an async SQLite in-memory engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


async def seed_request(
    session_factory: async_sessionmaker[AsyncSession],
    request_id: str = REQUEST_ID,
    student_ids: tuple[str, ...] = STUDENT_IDS,
    status: str = "open",
    expires_at: dt.datetime | None = None,
    assigned_student_id: str | None = None,
) -> None:
    """Insert any missing students plus one tourist request."""
    async with session_factory() as session:
        async with session.begin():
            for student_id in student_ids:
                if await session.get(Student, student_id) is None:
                    session.add(
                        Student(
                            id=student_id,
                            name=student_id.removeprefix("stu-").title(),
                            email=f"{student_id}@uni.example.edu",
                        )
                    )
            session.add(
                TouristRequest(
                    id=request_id,
                    email="tourist@example.com",
                    city="Lisbon",
                    dates={"start": "2026-04-02", "end": "2026-04-04"},
                    status=status,
                    expires_at=expires_at,
                    assigned_student_id=assigned_student_id,
                )
            )


@pytest.fixture
async def seeded_request(test_session_factory) -> str:
    """One open request with three candidate students, no selections yet."""
    await seed_request(test_session_factory)
    return REQUEST_ID


@pytest.fixture
async def selections(test_session_factory, seeded_request, arbiter) -> dict:
    """Pending selections for the seeded request, keyed by student id."""
    async with test_session_factory() as session:
        rows = await arbiter.create_selections(session, seeded_request, STUDENT_IDS)
    return {row.student_id: row for row in rows}


@pytest.fixture
async def api_client(test_engine, test_session_factory, codec, fanout):
    """Async HTTP client hitting the FastAPI app with test DB and codec."""

    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_fanout] = lambda: fanout
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
