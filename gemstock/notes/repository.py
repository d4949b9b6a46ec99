"""Order customer notes persistence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from gemstock.db.connection import SessionScope, get_session
from gemstock.db.errors import translate_storage_errors
from gemstock.db.models import OrderNoteModel
from gemstock.exceptions import TransientError, ValidationError
from gemstock.models import StatusNote

logger = logging.getLogger(__name__)


class OrderNoteStore:
    """Notes keyed by a client-chosen id, so a repeated create is harmless.

    Every call is its own unit of work; a note returned by :meth:`create` has
    been committed.
    """

    def __init__(self, session_scope: SessionScope = get_session):
        self._session_scope = session_scope

    async def create(self, note: StatusNote) -> StatusNote:
        """Insert ``note``, or return the stored copy if its id already exists.

        Raises:
            TransientError: Storage unavailable, or the id exists but the row is
                not readable yet
            ValidationError: The id is taken by a note for another order
        """
        created_at = note.created_at or datetime.now(timezone.utc)
        model = OrderNoteModel(
            id=note.id,
            order_id=note.order_id,
            content=note.content,
            status=note.status,
            created_by=note.created_by,
            created_at=created_at,
        )

        try:
            with translate_storage_errors("create order note"):
                async with self._session_scope() as session:
                    session.add(model)
                    await session.flush()
        except IntegrityError as e:
            existing = await self.get_by_id(note.id)
            if existing is None:
                raise TransientError(
                    f"Note {note.id} conflicts but is not readable yet", original_error=e
                ) from e
            if existing.order_id != note.order_id or existing.status != note.status:
                raise ValidationError(
                    f"Note id {note.id} already belongs to another note", original_error=e
                ) from e
            logger.info(f"Note {note.id} already stored; reusing it")
            return existing

        return note.model_copy(update={"created_at": created_at})

    async def get_by_id(self, note_id: UUID) -> StatusNote | None:
        with translate_storage_errors("read order note"):
            async with self._session_scope() as session:
                model = await session.get(OrderNoteModel, note_id)
                return _to_note(model) if model else None

    async def list_by_order(self, order_id: str, status: str | None = None) -> list[StatusNote]:
        """Notes for an order, oldest first, optionally only those with ``status``."""
        stmt = select(OrderNoteModel).where(OrderNoteModel.order_id == order_id)
        if status is not None:
            stmt = stmt.where(OrderNoteModel.status == status)
        stmt = stmt.order_by(OrderNoteModel.created_at.asc())

        with translate_storage_errors("list order notes"):
            async with self._session_scope() as session:
                rows = await session.execute(stmt)
                return [_to_note(model) for model in rows.scalars()]


def _to_note(model: OrderNoteModel) -> StatusNote:
    return StatusNote(
        id=model.id,
        order_id=model.order_id,
        status=model.status,
        content=model.content,
        created_by=model.created_by,
        created_at=model.created_at,
    )
