"""Shared fixtures: in-memory database, settings, a controllable clock."""

from __future__ import annotations

import base64

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import dinein.models  # noqa: F401
from dinein.config import Settings
from dinein.services.auth_cookie import AuthCookieCodec
from dinein.utils.datetime import now_ms as wall_clock_ms

TEST_SECRET = b"0123456789abcdef0123456789abcdef"
TEST_SECRET_B64 = base64.b64encode(TEST_SECRET).decode()


class FakeClock:
    """Epoch-millisecond clock moved by hand, starting at wall-clock time."""

    def __init__(self, now_ms: int | None = None) -> None:
        self.now_ms = wall_clock_ms() if now_ms is None else now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, *, seconds: float = 0, minutes: float = 0) -> None:
        self.now_ms += int((seconds + minutes * 60) * 1000)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'dinein.db'}"},
        security={"cookie_secret": TEST_SECRET_B64},
        gc={"enabled": False},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock: FakeClock) -> AuthCookieCodec:
    return AuthCookieCodec(
        TEST_SECRET,
        max_age_seconds=15 * 60,
        refresh_threshold_seconds=5 * 60,
        clock=clock,
    )


@pytest.fixture
async def db_session():
    """Create in-memory SQLite database and session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async_session_factory = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def file_session_factory(tmp_path):
    """Session factory over a file database, for tests needing several
    concurrent sessions against the same data."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrent.db'}",
        echo=False,
        connect_args={"timeout": 10},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
