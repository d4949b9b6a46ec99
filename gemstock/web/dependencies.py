"""Shared dependencies for gemstock web routes.

Usage:
    from fastapi import Depends
    from gemstock.web.dependencies import get_session_scope, require_actor

    @router.post("/parcels/{parcel_id}/add")
    async def add(parcel_id: str, actor: Actor = Depends(require_actor), ...):
        ...

Tests swap storage by overriding :func:`get_session_scope` through
``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends, Header

from gemstock.core.identity import Actor, IdentityProvider, ProfileIdentityProvider, resolve_actor
from gemstock.db.connection import SessionScope, get_session
from gemstock.inventory.service import StockMutationEngine
from gemstock.notes.alerts import OperatorAlertStore
from gemstock.notes.repository import OrderNoteStore
from gemstock.notes.writer import StatusNoteWriter


def get_session_scope() -> SessionScope:
    """Unit-of-work factory used by every route."""
    return get_session


def get_identity(
    x_user_id: str | None = Header(default=None),
    scope: SessionScope = Depends(get_session_scope),
) -> IdentityProvider:
    """Identity from the ``X-User-Id`` header set by the authenticating proxy."""
    return ProfileIdentityProvider(user_id=(x_user_id or "").strip() or None, session_scope=scope)


async def get_actor(identity: IdentityProvider = Depends(get_identity)) -> Actor:
    """Acting user, or the system actor when the request is anonymous."""
    return await resolve_actor(identity)


async def require_actor(identity: IdentityProvider = Depends(get_identity)) -> Actor:
    """Acting user; anonymous requests get a 401."""
    return await resolve_actor(identity, required=True)


def get_stock_engine(scope: SessionScope = Depends(get_session_scope)) -> StockMutationEngine:
    return StockMutationEngine(scope)


def get_alert_store(scope: SessionScope = Depends(get_session_scope)) -> OperatorAlertStore:
    return OperatorAlertStore(scope)


def get_note_store(scope: SessionScope = Depends(get_session_scope)) -> OrderNoteStore:
    return OrderNoteStore(scope)


def get_note_writer(
    notes: OrderNoteStore = Depends(get_note_store),
    alerts: OperatorAlertStore = Depends(get_alert_store),
    identity: IdentityProvider = Depends(get_identity),
) -> StatusNoteWriter:
    return StatusNoteWriter(notes, alerts, identity)


__all__ = [
    "get_actor",
    "get_alert_store",
    "get_identity",
    "get_note_store",
    "get_note_writer",
    "get_session_scope",
    "get_stock_engine",
    "require_actor",
]
