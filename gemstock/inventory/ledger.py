"""Append-only movement ledger for parcels.

Rows are written once and never touched again (the ORM refuses updates and
deletes on ``MovementRecordModel``). They carry no foreign key to ``parcels`` so
history survives deletion.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gemstock.core.identity import Actor
from gemstock.db.errors import translate_storage_errors
from gemstock.db.models import MovementRecordModel
from gemstock.models import MovementAction, MovementRecord

# Upper bounds (exclusive) for carat_group labels
_CARAT_GROUPS = (
    (Decimal("0.5"), "0-0.5"),
    (Decimal("1.0"), "0.5-1.0"),
    (Decimal("1.5"), "1.0-1.5"),
    (Decimal("2.0"), "1.5-2.0"),
)


def carat_group(ct_weight_delta: Decimal) -> str:
    """Bucket label for the size of a carat change; empty when nothing moved.

    >>> carat_group(Decimal("-0.75"))
    '0.5-1.0'
    """
    weight = abs(ct_weight_delta)
    if weight == 0:
        return ""
    for upper, label in _CARAT_GROUPS:
        if weight < upper:
            return label
    return "2.0+"


class MovementLedger:
    """Ledger reads and appends within the caller's session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        *,
        parcel_id: str,
        action: MovementAction,
        ct_weight_delta: Decimal,
        stones_delta: int,
        total_carat: Decimal,
        actor: Actor,
        created_at: datetime,
        ct_price: Decimal | None = None,
        comment: str = "",
    ) -> MovementRecord:
        model = MovementRecordModel(
            parcel_id=parcel_id,
            action=action.value,
            ct_weight_delta=ct_weight_delta,
            stones_delta=stones_delta,
            total_carat=total_carat,
            carat_group=carat_group(ct_weight_delta),
            ct_price=ct_price,
            comment=(comment or "").strip(),
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            created_at=created_at,
        )
        self.session.add(model)
        with translate_storage_errors("append movement"):
            await self.session.flush()
        return _to_record(model)

    async def history(self, parcel_id: str) -> list[MovementRecord]:
        """Entries for one parcel, newest first."""
        stmt = (
            select(MovementRecordModel)
            .where(MovementRecordModel.parcel_id == parcel_id)
            .order_by(MovementRecordModel.created_at.desc(), MovementRecordModel.id)
        )
        with translate_storage_errors("read history"):
            rows = await self.session.execute(stmt)
        return [_to_record(model) for model in rows.scalars()]

    async def scan_since(self, since: datetime) -> list[MovementRecord]:
        """Every entry at or after ``since``, oldest first."""
        stmt = (
            select(MovementRecordModel)
            .where(MovementRecordModel.created_at >= since)
            .order_by(MovementRecordModel.created_at.asc())
        )
        with translate_storage_errors("scan ledger"):
            rows = await self.session.execute(stmt)
        return [_to_record(model) for model in rows.scalars()]


def _to_record(model: MovementRecordModel) -> MovementRecord:
    return MovementRecord(
        id=model.id,
        parcel_id=model.parcel_id,
        action=MovementAction(model.action),
        ct_weight_delta=model.ct_weight_delta,
        stones_delta=model.stones_delta,
        total_carat=model.total_carat,
        carat_group=model.carat_group,
        ct_price=model.ct_price,
        comment=model.comment,
        actor_id=model.actor_id,
        actor_name=model.actor_name,
        created_at=model.created_at,
    )
