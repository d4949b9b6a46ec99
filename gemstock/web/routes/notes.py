"""Order status notes and operator alert routes.

Routes:
- POST /orders/{order_id}/status-notes  - Write and verify a status note
- GET  /orders/{order_id}/notes         - Notes for an order (optional status filter)
- GET  /alerts                          - Open operator alerts
- POST /alerts/{alert_id}/acknowledge   - Mark an alert handled
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from gemstock.core.identity import Actor
from gemstock.exceptions import ValidationError
from gemstock.models import OperatorAlert, StatusNote
from gemstock.notes.alerts import OperatorAlertStore
from gemstock.notes.repository import OrderNoteStore
from gemstock.notes.writer import StatusNoteWriter, validate_order_id
from gemstock.web.dependencies import (
    get_alert_store,
    get_note_store,
    get_note_writer,
    require_actor,
)
from gemstock.web.models import StatusNoteRequest

router = APIRouter(tags=["notes"])


@router.post(
    "/orders/{order_id}/status-notes",
    response_model=StatusNote,
    status_code=status.HTTP_201_CREATED,
)
async def create_status_note(
    order_id: str,
    body: StatusNoteRequest,
    writer: StatusNoteWriter = Depends(get_note_writer),
):
    """Returns only once the note is visible to the email automation.

    502 means the note could not be confirmed; an operator alert was stored.
    """
    if body.content:
        return await writer.write(order_id, body.content, status=body.status)
    if body.item_count is not None:
        return await writer.record_casting_order(order_id, body.item_count)
    raise ValidationError("Either content or item_count is required")


@router.get("/orders/{order_id}/notes", response_model=list[StatusNote])
async def list_order_notes(
    order_id: str,
    status: str | None = None,
    notes: OrderNoteStore = Depends(get_note_store),
):
    return await notes.list_by_order(validate_order_id(order_id), status=status)


@router.get("/alerts", response_model=list[OperatorAlert])
async def list_alerts(
    kind: str | None = None,
    alerts: OperatorAlertStore = Depends(get_alert_store),
):
    return await alerts.list_open(kind)


@router.post("/alerts/{alert_id}/acknowledge", response_model=OperatorAlert)
async def acknowledge_alert(
    alert_id: UUID,
    actor: Actor = Depends(require_actor),
    alerts: OperatorAlertStore = Depends(get_alert_store),
):
    return await alerts.acknowledge(alert_id, actor.user_id)
