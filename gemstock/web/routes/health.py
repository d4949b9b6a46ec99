"""Health check API routes.

Provides endpoints for monitoring application health and connectivity.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gemstock.db.connection import SessionScope
from gemstock.web.dependencies import get_session_scope

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(scope: SessionScope = Depends(get_session_scope)):
    """Check application health.

    Verifies database connectivity.
    """
    try:
        async with scope() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except SQLAlchemyError as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e),
        }
