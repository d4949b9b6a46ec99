"""Usage analytics and highlighting settings routes.

Routes:
- GET    /analytics/usage       - Per-parcel usage in the last N days
- GET    /analytics/highlights  - Colour per parcel from the caller's settings
- GET    /analytics/settings    - Caller's highlighting settings (defaults if unset)
- PUT    /analytics/settings    - Validate and save settings
- DELETE /analytics/settings    - Forget settings
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, status

from gemstock.analytics.service import UsageAnalyticsEngine
from gemstock.analytics.settings import HighlightingSettingsStore, get_default_settings
from gemstock.core.identity import Actor
from gemstock.db.connection import SessionScope
from gemstock.models import HighlightingConfig, ParcelHighlight, UsageAggregate
from gemstock.web.dependencies import get_actor, get_session_scope, require_actor

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/usage", response_model=list[UsageAggregate])
async def parcel_usage(
    days: int = Query(default=30, ge=1, le=3650),
    scope: SessionScope = Depends(get_session_scope),
):
    async with scope() as session:
        return await UsageAnalyticsEngine(session).get_parcel_usage_data(days)


@router.get("/highlights", response_model=list[ParcelHighlight])
async def parcel_highlights(
    complete: bool = Query(default=True, description="Include parcels with no usage"),
    actor: Actor = Depends(get_actor),
    scope: SessionScope = Depends(get_session_scope),
):
    """Uses the caller's saved settings; anonymous callers get the defaults."""
    async with scope() as session:
        if actor.user_id:
            config = await HighlightingSettingsStore(session).load(actor.user_id)
        else:
            config = get_default_settings()

        engine = UsageAnalyticsEngine(session)
        if complete:
            return await engine.generate_complete_highlighting_data(config)
        return await engine.generate_highlighting_data(config)


@router.get("/settings", response_model=HighlightingConfig)
async def get_settings(
    actor: Actor = Depends(require_actor),
    scope: SessionScope = Depends(get_session_scope),
):
    async with scope() as session:
        return await HighlightingSettingsStore(session).load(actor.user_id)


@router.put("/settings", response_model=HighlightingConfig)
async def save_settings(
    body: Dict[str, Any],
    actor: Actor = Depends(require_actor),
    scope: SessionScope = Depends(get_session_scope),
):
    # Raw dict so malformed settings surface as ValidationError (400), not 422
    async with scope() as session:
        return await HighlightingSettingsStore(session).save(actor.user_id, body)


@router.delete("/settings", status_code=status.HTTP_204_NO_CONTENT)
async def clear_settings(
    actor: Actor = Depends(require_actor),
    scope: SessionScope = Depends(get_session_scope),
):
    async with scope() as session:
        await HighlightingSettingsStore(session).clear(actor.user_id)
