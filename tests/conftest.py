"""Pytest configuration and fixtures for gemstock tests.

Provides an in-memory SQLite database (one shared connection so every session
sees the same data), unit-of-work scopes over it and sample parcels.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gemstock.config import reset_config
from gemstock.db.connection import enable_sqlite_foreign_keys, session_scope
from gemstock.db.models import Base
from gemstock.models import ParcelCreate


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def scope(session_factory):
    """Unit-of-work factory (commit on success, rollback on error)."""
    return session_scope(session_factory)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


class FakeClock:
    """Settable clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def parent_parcel_data() -> ParcelCreate:
    """A round brilliant lot."""
    return ParcelCreate(
        parcel_id="P-100",
        parcel_name="Round brilliant 1.0-1.5",
        total_carat=Decimal("12.500"),
        number_of_stones=10,
        price_per_ct=Decimal("1500.00"),
        ws_price_per_ct=Decimal("1200.00"),
        color="G",
        shape="Round",
        clarity="VS1",
        polish_symmetry="EX/EX",
        fluorescence="None",
        certificate_type="GIA",
    )


@pytest.fixture
def second_parcel_data() -> ParcelCreate:
    """A cheaper oval lot."""
    return ParcelCreate(
        parcel_id="P-200",
        parcel_name="Oval melee",
        total_carat=Decimal("0.750"),
        number_of_stones=30,
        price_per_ct=Decimal("800.00"),
        color="H",
        shape="Oval",
        clarity="SI1",
    )
