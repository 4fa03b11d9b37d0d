import os

# Must be set before anything imports core.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["APP_ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret"

from datetime import datetime

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from core.security import create_access_token, hash_password
from db.session import Base, get_db, get_session_factory
from models import user as user_models, challenge as challenge_models, content, echo_score  # noqa: F401
from models.challenge import Challenge, ChallengeSubmission
from models.content import NewsArticle, ReadingActivity
from models.user import User
from utils import redis_client


OPTIONS_CONTENT = {
    "kind": "options",
    "options": [{"id": "a", "text": "First"}, {"id": "b", "text": "Second"}, {"id": "c", "text": "Third"}],
}


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(redis_client, "_redis_available", False)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def orm_statements():
    """PostgreSQL rendering of every ORM statement run while the test is active."""
    statements = []

    def record(state):
        statements.append(str(state.statement.compile(dialect=postgresql.dialect())))

    event.listen(Session, "do_orm_execute", record)
    yield statements
    event.remove(Session, "do_orm_execute", record)

# ── Data helpers ──────────────────────────────────────────────────────────────

async def make_user(db, username="reader", password="correct-horse"):
    user = User(
        email=f"{username}@example.com",
        username=username,
        hashed_password=hash_password(password),
        echo_score=0.0,
        current_streak=0,
        total_xp=0,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


async def make_challenge(db, **overrides):
    fields = dict(
        type="logic_puzzle",
        title="Puzzle",
        prompt="Pick one.",
        content=OPTIONS_CONTENT,
        correct_answer="a",
        difficulty=1,
        estimated_time_minutes=5,
        xp_reward=10,
        allow_retries=True,
        is_active=True,
    )
    fields.update(overrides)
    challenge = Challenge(**fields)
    db.add(challenge)
    await db.commit()
    return challenge


async def add_submission(db, user, challenge, is_correct, created_at, time_spent=60):
    submission = ChallengeSubmission(
        user_id=user.id,
        challenge_id=challenge.id,
        user_answer="a" if is_correct else "b",
        is_correct=is_correct,
        time_spent_seconds=time_spent,
        attempts=1,
        xp_earned=0,
        created_at=created_at,
    )
    db.add(submission)
    await db.commit()
    return submission


async def add_read(db, user, bias_rating, created_at, title=None):
    article = NewsArticle(
        title=title or f"Article {bias_rating} {created_at.isoformat()}",
        source="Wire",
        bias_rating=bias_rating,
        published_at=created_at,
        is_active=True,
    )
    db.add(article)
    await db.flush()
    reading = ReadingActivity(
        user_id=user.id,
        article_id=article.id,
        time_spent_seconds=120,
        completion_percentage=100.0,
        created_at=created_at,
    )
    db.add(reading)
    await db.commit()
    return article


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def at(day: int, hour: int = 12, minute: int = 0) -> datetime:
    """A fixed timestamp in March 2026, so day boundaries are easy to read in tests."""
    return datetime(2026, 3, day, hour, minute)
