"""Operator alerts: durable records of failures a person has to resolve."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select

from gemstock.db.connection import SessionScope, get_session
from gemstock.db.errors import translate_storage_errors
from gemstock.db.models import OperatorAlertModel
from gemstock.exceptions import NotFoundError
from gemstock.models import OperatorAlert

logger = logging.getLogger(__name__)

STATUS_NOTE_UNVERIFIED = "status_note_unverified"


class OperatorAlertStore:
    def __init__(self, session_scope: SessionScope = get_session):
        self._session_scope = session_scope

    async def raise_alert(
        self,
        kind: str,
        resource_type: str,
        resource_id: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> OperatorAlert:
        """Persist an alert and return it."""
        model = OperatorAlertModel(
            kind=kind,
            resource_type=resource_type,
            resource_id=resource_id,
            message=message,
            details=details or {},
            created_at=datetime.now(timezone.utc),
        )
        with translate_storage_errors("raise operator alert"):
            async with self._session_scope() as session:
                session.add(model)
                await session.flush()
                alert = _to_alert(model)

        logger.warning(f"Operator alert {alert.id} [{kind}] {resource_type}={resource_id}: {message}")
        return alert

    async def list_open(self, kind: str | None = None) -> list[OperatorAlert]:
        """Unacknowledged alerts, newest first."""
        stmt = select(OperatorAlertModel).where(OperatorAlertModel.acknowledged_at.is_(None))
        if kind:
            stmt = stmt.where(OperatorAlertModel.kind == kind)
        stmt = stmt.order_by(OperatorAlertModel.created_at.desc())

        with translate_storage_errors("list operator alerts"):
            async with self._session_scope() as session:
                rows = await session.execute(stmt)
                return [_to_alert(model) for model in rows.scalars()]

    async def acknowledge(self, alert_id: UUID, acknowledged_by: str) -> OperatorAlert:
        """Mark an alert handled. Acknowledging twice keeps the first timestamp.

        Raises:
            NotFoundError: If the alert does not exist
        """
        with translate_storage_errors("acknowledge operator alert"):
            async with self._session_scope() as session:
                model = await session.get(OperatorAlertModel, alert_id)
                if model is None:
                    raise NotFoundError(f"Alert {alert_id} not found")
                if model.acknowledged_at is None:
                    model.acknowledged_at = datetime.now(timezone.utc)
                    model.acknowledged_by = acknowledged_by
                    await session.flush()
                return _to_alert(model)


def _to_alert(model: OperatorAlertModel) -> OperatorAlert:
    return OperatorAlert(
        id=model.id,
        kind=model.kind,
        resource_type=model.resource_type,
        resource_id=model.resource_id,
        message=model.message,
        details=model.details or {},
        created_at=model.created_at,
        acknowledged_at=model.acknowledged_at,
    )
