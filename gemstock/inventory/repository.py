"""Database access for diamond parcels."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gemstock.db.errors import translate_storage_errors
from gemstock.db.models import ParcelModel
from gemstock.exceptions import NotFoundError, ValidationError
from gemstock.models import (
    EDITABLE_FIELDS,
    ChildLineage,
    InventoryStats,
    Parcel,
    ParcelCreate,
    ParcelSearch,
    ParcelWithSubParcels,
    ParentLineage,
)

logger = logging.getLogger(__name__)

# Search buckets offered by the stock table filters: label -> [low, high)
CARAT_WEIGHT_BUCKETS: dict[str, tuple[Decimal | None, Decimal | None]] = {
    "0.5-1.0": (Decimal("0.5"), Decimal("1.0")),
    "1.0-1.5": (Decimal("1.0"), Decimal("1.5")),
    "1.5-2.0": (Decimal("1.5"), Decimal("2.0")),
    "2.0-3.0": (Decimal("2.0"), Decimal("3.0")),
    "3.0+": (Decimal("3.0"), None),
}

PRICE_RANGE_BUCKETS: dict[str, tuple[Decimal | None, Decimal | None]] = {
    "$0-$1000": (None, Decimal("1000")),
    "$1000-$5000": (Decimal("1000"), Decimal("5000")),
    "$5000-$10000": (Decimal("5000"), Decimal("10000")),
    "$10000-$25000": (Decimal("10000"), Decimal("25000")),
    "$25000+": (Decimal("25000"), None),
}

SORT_ORDERS = {
    "Price: Low to High": (ParcelModel.price_per_ct.asc(),),
    "Price: High to Low": (ParcelModel.price_per_ct.desc(),),
    "Carat: Low to High": (ParcelModel.total_carat.asc(),),
    "Carat: High to Low": (ParcelModel.total_carat.desc(),),
    "Date Added": (ParcelModel.created_at.desc(),),
}
DEFAULT_SORT = "Date Added"

QUANTITY_FIELDS = ("total_carat", "number_of_stones")
UPDATABLE_FIELDS = frozenset(EDITABLE_FIELDS) | frozenset(QUANTITY_FIELDS)

_MONEY = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParcelStore:
    """Parcel persistence and lineage lookups.

    Works inside the caller's session; committing is the caller's job.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> list[Parcel]:
        stmt = select(ParcelModel).order_by(*SORT_ORDERS[DEFAULT_SORT], ParcelModel.parcel_id)
        with translate_storage_errors("list parcels"):
            rows = await self.session.execute(stmt)
        return [_to_parcel(model) for model in rows.scalars()]

    async def find(self, parcel_id: str) -> Parcel | None:
        model = await self._load(parcel_id)
        return _to_parcel(model) if model else None

    async def get_by_id(self, parcel_id: str) -> Parcel:
        """Return a parcel.

        Raises:
            NotFoundError: If no parcel has this id
        """
        return _to_parcel(await self._require(parcel_id))

    async def search(self, criteria: ParcelSearch) -> list[Parcel]:
        """Filter parcels the way the stock table search form does.

        Text fields match partially (case-insensitive); grading fields match
        exactly. Carat and price filters take a bucket label.

        Raises:
            ValidationError: If a bucket label is unknown
        """
        stmt = select(ParcelModel)

        if criteria.parcel_id:
            stmt = stmt.where(ParcelModel.parcel_id.ilike(f"%{criteria.parcel_id}%"))
        if criteria.stone_id:
            stmt = stmt.where(
                ParcelModel.parcel_id.ilike(f"%{criteria.stone_id}%"),
                ParcelModel.is_parent.is_(False),
            )
        if criteria.parcel_name:
            stmt = stmt.where(ParcelModel.parcel_name.ilike(f"%{criteria.parcel_name}%"))
        if criteria.shape:
            stmt = stmt.where(ParcelModel.shape == criteria.shape)
        if criteria.color:
            stmt = stmt.where(ParcelModel.color == criteria.color)
        if criteria.clarity:
            stmt = stmt.where(ParcelModel.clarity == criteria.clarity)

        if criteria.carat_weight:
            if criteria.carat_weight not in CARAT_WEIGHT_BUCKETS:
                raise ValidationError(f"Unknown carat weight range: {criteria.carat_weight}")
            low, high = CARAT_WEIGHT_BUCKETS[criteria.carat_weight]
            stmt = _within(stmt, ParcelModel.total_carat, low, high)

        if criteria.price_range:
            if criteria.price_range not in PRICE_RANGE_BUCKETS:
                raise ValidationError(f"Unknown price range: {criteria.price_range}")
            low, high = PRICE_RANGE_BUCKETS[criteria.price_range]
            stmt = _within(stmt, ParcelModel.price_per_ct, low, high)

        if criteria.minimum_level:
            stmt = stmt.where(ParcelModel.minimum_level >= 0)
        if criteria.edit_check:
            stmt = stmt.where(ParcelModel.is_editable.is_(True))

        # Unknown sort labels fall back to newest first, like the table does
        order = SORT_ORDERS.get(criteria.sort_by or DEFAULT_SORT, SORT_ORDERS[DEFAULT_SORT])
        stmt = stmt.order_by(*order, ParcelModel.parcel_id)

        with translate_storage_errors("search parcels"):
            rows = await self.session.execute(stmt)
        return [_to_parcel(model) for model in rows.scalars()]

    async def create(self, data: ParcelCreate, created_at: datetime | None = None) -> Parcel:
        """Insert a parcel; a ``parent_parcel_id`` makes it a sub-parcel.

        Raises:
            ValidationError: Missing required fields, duplicate id, or a parent
                that does not exist or is itself a sub-parcel
        """
        missing = data.missing_required()
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        if await self._load(data.parcel_id) is not None:
            raise ValidationError(f"Parcel {data.parcel_id} already exists")

        if data.parent_parcel_id:
            parent = await self._load(data.parent_parcel_id)
            if parent is None:
                raise ValidationError(f"Parent parcel {data.parent_parcel_id} not found")
            if not parent.is_parent:
                raise ValidationError(
                    f"Parcel {data.parent_parcel_id} is a sub-parcel and cannot have sub-parcels"
                )

        fields = data.model_dump(exclude={"parcel_id", "parent_parcel_id"})
        now = created_at or utcnow()
        model = ParcelModel(
            parcel_id=data.parcel_id,
            is_parent=data.parent_parcel_id is None,
            parent_parcel_id=data.parent_parcel_id,
            parent_is_parent=True if data.parent_parcel_id else None,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self.session.add(model)

        try:
            with translate_storage_errors("create parcel"):
                await self.session.flush()
        except IntegrityError as e:
            # Lost a race with another insert, or a lineage constraint fired
            raise ValidationError(f"Could not create parcel {data.parcel_id}", original_error=e) from e

        logger.info(f"Created parcel {model.parcel_id} (parent={model.parent_parcel_id})")
        return _to_parcel(model)

    async def update(self, parcel_id: str, patch: Mapping[str, Any]) -> Parcel:
        """Apply ``patch`` to a parcel row.

        Lineage cannot change. Raises ``StaleDataError`` from the flush if the
        row was modified since it was loaded in this session.

        Raises:
            NotFoundError: If no parcel has this id
            ValidationError: Unknown/immutable fields or negative quantities
        """
        unknown = sorted(set(patch) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

        for name in QUANTITY_FIELDS:
            if name in patch and (patch[name] is None or patch[name] < 0):
                raise ValidationError(f"{name} must be a non-negative number")

        model = await self._require(parcel_id)
        for name, value in patch.items():
            setattr(model, name, value)
        model.updated_at = utcnow()

        with translate_storage_errors("update parcel"):
            await self.session.flush()
        return _to_parcel(model)

    async def delete(self, parcel_id: str) -> Parcel:
        """Remove one parcel row and return what it held.

        Raises:
            NotFoundError: If no parcel has this id
        """
        model = await self._require(parcel_id)
        snapshot = _to_parcel(model)
        await self.session.delete(model)
        with translate_storage_errors("delete parcel"):
            await self.session.flush()
        logger.info(f"Deleted parcel {parcel_id}")
        return snapshot

    async def get_children(self, parent_id: str) -> list[Parcel]:
        stmt = (
            select(ParcelModel)
            .where(ParcelModel.parent_parcel_id == parent_id)
            .order_by(ParcelModel.parcel_id)
        )
        with translate_storage_errors("list sub-parcels"):
            rows = await self.session.execute(stmt)
        return [_to_parcel(model) for model in rows.scalars()]

    async def get_hierarchy(self) -> list[ParcelWithSubParcels]:
        """Parents (newest first), each with its sub-parcels attached."""
        parcels = await self.get_all()
        children: dict[str, list[Parcel]] = {}
        for parcel in parcels:
            if parcel.parent_parcel_id:
                children.setdefault(parcel.parent_parcel_id, []).append(parcel)

        return [
            ParcelWithSubParcels(
                **parcel.model_dump(exclude={"is_parent", "parent_parcel_id"}),
                sub_parcels=sorted(children.get(parcel.parcel_id, []), key=lambda p: p.parcel_id),
            )
            for parcel in parcels
            if parcel.is_parent
        ]

    async def get_all_parcel_ids(self) -> list[str]:
        stmt = select(ParcelModel.parcel_id).order_by(ParcelModel.parcel_id)
        with translate_storage_errors("list parcel ids"):
            rows = await self.session.execute(stmt)
        return list(rows.scalars())

    async def stats(self) -> InventoryStats:
        """Count, total value (carat x price per ct) and average value per parcel."""
        stmt = select(ParcelModel.total_carat, ParcelModel.price_per_ct)
        with translate_storage_errors("parcel stats"):
            rows = (await self.session.execute(stmt)).all()

        total = len(rows)
        total_value = sum(
            ((carat or Decimal("0")) * (price or Decimal("0")) for carat, price in rows),
            Decimal("0"),
        )
        average = total_value / total if total else Decimal("0")
        return InventoryStats(
            total=total,
            total_value=total_value.quantize(_MONEY),
            average_price=average.quantize(_MONEY),
        )

    async def _load(self, parcel_id: str | None) -> ParcelModel | None:
        if not parcel_id:
            return None
        stmt = select(ParcelModel).where(ParcelModel.parcel_id == parcel_id)
        with translate_storage_errors("load parcel"):
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _require(self, parcel_id: str) -> ParcelModel:
        model = await self._load(parcel_id)
        if model is None:
            raise NotFoundError(f"Parcel {parcel_id} not found")
        return model


def _within(stmt, column, low: Decimal | None, high: Decimal | None):
    if low is not None:
        stmt = stmt.where(column >= low)
    if high is not None:
        stmt = stmt.where(column < high)
    return stmt


def _to_parcel(model: ParcelModel) -> Parcel:
    lineage = (
        ParentLineage()
        if model.is_parent
        else ChildLineage(parent_parcel_id=model.parent_parcel_id)
    )
    return Parcel(
        parcel_id=model.parcel_id,
        lineage=lineage,
        parcel_name=model.parcel_name,
        total_carat=model.total_carat,
        number_of_stones=model.number_of_stones,
        price_per_ct=model.price_per_ct,
        ws_price_per_ct=model.ws_price_per_ct,
        carat_category=model.carat_category,
        color=model.color,
        shape=model.shape,
        clarity=model.clarity,
        polish_symmetry=model.polish_symmetry,
        fluorescence=model.fluorescence,
        certificate_type=model.certificate_type,
        mm=model.mm,
        minimum_level=model.minimum_level,
        is_editable=model.is_editable,
        comments=model.comments,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )
