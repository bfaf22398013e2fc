import asyncio
import uuid
from collections.abc import AsyncGenerator, Callable, Generator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings
from app.main import app
from app.models import Course, Enrollment, Lesson, User
from app.realtime.dispatcher import BroadcastDispatcher
from app.realtime.gateway import CommentsGateway
from app.realtime.rooms import RoomManager
from app.realtime.sessions import SessionRegistry
from shared.auth.config import AuthSettings
from shared.constants import Role
from shared.database.postgres import Base
from shared.models.user import CurrentUser


@dataclass(frozen=True)
class Seed:
    """Ids of the LMS rows every test starts from.

    ``student`` is enrolled in ``course``; ``outsider`` is a student with no
    enrollment; ``instructor`` teaches ``course`` but is not enrolled in it.
    """

    student_id: uuid.UUID
    outsider_id: uuid.UUID
    instructor_id: uuid.UUID
    course_id: uuid.UUID
    lesson_id: uuid.UUID
    other_lesson_id: uuid.UUID


async def _seed_lms(factory: async_sessionmaker[AsyncSession]) -> Seed:
    async with factory() as session:
        student = User(name="Ada Student", email="ada@example.com", role=Role.STUDENT)
        outsider = User(name="Bo Outsider", email="bo@example.com", role=Role.STUDENT)
        instructor = User(
            name="Cy Instructor",
            email="cy@example.com",
            role=Role.INSTRUCTOR,
            profile_image="https://cdn.example.com/cy.png",
        )
        session.add_all([student, outsider, instructor])
        await session.flush()

        course = Course(title="Cocktails 101", instructor_id=instructor.user_id)
        session.add(course)
        await session.flush()

        lesson = Lesson(course_id=course.course_id, title="Shaking", sort_order=1)
        other_lesson = Lesson(course_id=course.course_id, title="Stirring", sort_order=2)
        session.add_all([lesson, other_lesson])
        session.add(Enrollment(user_id=student.user_id, course_id=course.course_id))
        await session.commit()

        return Seed(
            student_id=student.user_id,
            outsider_id=outsider.user_id,
            instructor_id=instructor.user_id,
            course_id=course.course_id,
            lesson_id=lesson.lesson_id,
            other_lesson_id=other_lesson.lesson_id,
        )


async def _create_schema(database_url: str) -> tuple:
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    return engine, factory


# ---------------------------------------------------------------------------
# Tokens and identities
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings()


@pytest.fixture
def make_token(auth_settings: AuthSettings) -> Callable[..., str]:
    def _make(
        user_id: uuid.UUID,
        role: Role = Role.STUDENT,
        *,
        name: str = "Test User",
        expires_in: int = 3600,
        secret: str | None = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "name": name,
            "email": f"{user_id.hex[:8]}@example.com",
            "role": role.value,
            "iss": auth_settings.issuer,
            "aud": auth_settings.audience,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        }
        return jwt.encode(claims, secret or auth_settings.secret, algorithm=auth_settings.algorithm)

    return _make


@pytest.fixture
def identity() -> Callable[..., CurrentUser]:
    def _identity(user_id: uuid.UUID, role: Role = Role.STUDENT) -> CurrentUser:
        return CurrentUser(id=user_id, email=f"{user_id.hex[:8]}@example.com", name="Test User", role=role)

    return _identity


# ---------------------------------------------------------------------------
# Database (async tests)
# ---------------------------------------------------------------------------


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'comments.db'}"


@pytest_asyncio.fixture
async def session_factory(database_url: str) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine, factory = await _create_schema(database_url)
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seed:
    return await _seed_lms(session_factory)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession], seed: Seed
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Realtime components wired to the test database
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(db_retry_base_delay_secs=0, ws_outbox_size=16)


@pytest.fixture
def registry(auth_settings: AuthSettings, settings: Settings) -> SessionRegistry:
    return SessionRegistry(auth_settings, outbox_size=settings.ws_outbox_size)


@pytest.fixture
def rooms(registry: SessionRegistry) -> RoomManager:
    return RoomManager(registry)


@pytest.fixture
def dispatcher(registry: SessionRegistry, rooms: RoomManager) -> BroadcastDispatcher:
    return BroadcastDispatcher(registry, rooms)


@pytest_asyncio.fixture
async def gateway(
    registry: SessionRegistry,
    rooms: RoomManager,
    dispatcher: BroadcastDispatcher,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    seed: Seed,
) -> CommentsGateway:
    return CommentsGateway(registry, rooms, dispatcher, session_factory, settings)


# ---------------------------------------------------------------------------
# Full application (sync TestClient for HTTP and WebSocket)
# ---------------------------------------------------------------------------


@pytest.fixture
def seeded_db(database_url: str) -> Seed:
    async def _setup() -> Seed:
        engine, factory = await _create_schema(database_url)
        try:
            return await _seed_lms(factory)
        finally:
            await engine.dispose()

    return asyncio.run(_setup())


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, database_url: str, seeded_db: Seed) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("COMMENTS_DATABASE_URL", database_url)
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("DB_RETRY_BASE_DELAY_SECS", "0")
    with TestClient(app) as c:
        yield c
