"""Shared fixtures for web route tests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Header

from gemstock.core.identity import StaticIdentityProvider
from gemstock.exceptions import GemStockError
from gemstock.web.app import gemstock_error_handler
from gemstock.web.dependencies import get_identity, get_session_scope


@pytest.fixture
def user_headers():
    return {"X-User-Id": "u-1"}


@pytest.fixture
def mock_session():
    """Mock database session handed out by the fake unit of work."""
    session = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def fake_scope(mock_session):
    @asynccontextmanager
    async def _scope():
        yield mock_session

    return _scope


@pytest.fixture
def make_app(fake_scope):
    """Build an app with the given routers, header identity and error mapping."""

    def identity_from_header(x_user_id: str | None = Header(default=None)):
        return StaticIdentityProvider(x_user_id, "Jane Doe")

    def _build(*routers) -> FastAPI:
        test_app = FastAPI()
        for router in routers:
            test_app.include_router(router)
        test_app.add_exception_handler(GemStockError, gemstock_error_handler)
        test_app.dependency_overrides[get_identity] = identity_from_header
        test_app.dependency_overrides[get_session_scope] = lambda: fake_scope
        return test_app

    return _build
