"""Stock mutations: every quantity or descriptive change lands with a ledger entry.

Each public operation is a single unit of work: it opens its own session,
changes the parcel row(s), appends exactly one movement record per parcel
touched and commits. Parcel rows are versioned, so when another writer got
there first the flush raises ``StaleDataError``; the operation is then re-read,
recomputed and re-written from scratch a bounded number of times.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm.exc import StaleDataError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from gemstock.config import get_config
from gemstock.core.identity import Actor
from gemstock.db.connection import SessionScope, get_session
from gemstock.exceptions import ConcurrentModificationError, ValidationError
from gemstock.inventory.ledger import MovementLedger
from gemstock.inventory.repository import ParcelStore, utcnow
from gemstock.models import (
    CARAT_PRECISION,
    EDITABLE_FIELDS,
    INHERITED_FIELDS,
    MovementAction,
    MovementRecord,
    Parcel,
    ParcelCreate,
    ParcelFields,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ZERO = Decimal("0")


class StockMutationEngine:
    """Applies add/reduce/edit/delete to parcels and records each in the ledger."""

    def __init__(
        self,
        session_scope: SessionScope = get_session,
        *,
        conflict_retry_attempts: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_scope = session_scope
        self.conflict_retry_attempts = (
            conflict_retry_attempts
            if conflict_retry_attempts is not None
            else get_config().inventory.conflict_retry_attempts
        )
        self._clock = clock

    async def create_parcel(self, data: ParcelCreate) -> Parcel:
        """Create a top-level parcel. No ledger entry is written for creation."""
        if data.parent_parcel_id:
            raise ValidationError("Use create_subcategory to create a sub-parcel")

        async with self._session_scope() as session:
            parcel = await ParcelStore(session).create(data, created_at=self._clock())
        return parcel

    async def create_subcategory(self, parent_parcel_id: str, data: ParcelCreate) -> Parcel:
        """Create a sub-parcel under ``parent_parcel_id``.

        Grading and pricing fields left empty are copied from the parent, and a
        missing ``parcel_id`` becomes ``SUB-<parent>-<epoch ms>``.

        Raises:
            NotFoundError: If the parent does not exist
            ValidationError: If the parent is itself a sub-parcel, or required
                fields are still missing after inheritance
        """
        async with self._session_scope() as session:
            store = ParcelStore(session)
            parent = await store.get_by_id(parent_parcel_id)
            if not parent.is_parent:
                raise ValidationError(
                    f"Parcel {parent_parcel_id} is a sub-parcel; sub-parcels cannot have children"
                )

            now = self._clock()
            values = data.model_dump()
            for name in INHERITED_FIELDS:
                if values.get(name) in (None, ""):
                    values[name] = getattr(parent, name)
            values["parent_parcel_id"] = parent.parcel_id
            if not values.get("parcel_id"):
                values["parcel_id"] = f"SUB-{parent.parcel_id}-{int(now.timestamp() * 1000)}"

            child = await store.create(ParcelCreate(**values), created_at=now)

        logger.info(f"Created sub-parcel {child.parcel_id} under {parent_parcel_id}")
        return child

    async def add(
        self,
        parcel_id: str,
        *,
        stones_delta: int = 0,
        carat_delta: Decimal | float | str = 0,
        comment: str = "",
        actor: Actor | None = None,
    ) -> Parcel:
        """Increase stones and carats; records an ``Add`` with the positive deltas."""
        stones = _stones(stones_delta)
        carat = _carat(carat_delta)
        actor = actor or Actor.system()

        async def apply(store: ParcelStore, ledger: MovementLedger) -> Parcel:
            current = await store.get_by_id(parcel_id)
            updated = await store.update(
                parcel_id,
                {
                    "number_of_stones": current.number_of_stones + stones,
                    "total_carat": current.total_carat + carat,
                },
            )
            await ledger.append(
                parcel_id=parcel_id,
                action=MovementAction.ADD,
                ct_weight_delta=carat,
                stones_delta=stones,
                total_carat=updated.total_carat,
                ct_price=updated.price_per_ct,
                comment=comment,
                actor=actor,
                created_at=self._clock(),
            )
            return updated

        parcel = await self._run(parcel_id, apply)
        logger.info(f"Added {stones} stone(s) / {carat} ct to {parcel_id} by {actor.display_name}")
        return parcel

    async def reduce(
        self,
        parcel_id: str,
        *,
        stones_delta: int = 0,
        carat_delta: Decimal | float | str = 0,
        comment: str = "",
        actor: Actor | None = None,
    ) -> Parcel:
        """Decrease stones and carats, never below zero.

        The ledger gets the change that was actually applied, signed negative:
        reducing 5 stones from a parcel holding 2 records ``stones_delta=-2``.
        """
        stones = _stones(stones_delta)
        carat = _carat(carat_delta)
        actor = actor or Actor.system()

        async def apply(store: ParcelStore, ledger: MovementLedger) -> Parcel:
            current = await store.get_by_id(parcel_id)
            new_stones = max(0, current.number_of_stones - stones)
            new_carat = max(_ZERO, current.total_carat - carat)
            updated = await store.update(
                parcel_id, {"number_of_stones": new_stones, "total_carat": new_carat}
            )
            await ledger.append(
                parcel_id=parcel_id,
                action=MovementAction.REDUCE,
                ct_weight_delta=new_carat - current.total_carat,
                stones_delta=new_stones - current.number_of_stones,
                total_carat=updated.total_carat,
                ct_price=updated.price_per_ct,
                comment=comment,
                actor=actor,
                created_at=self._clock(),
            )
            if new_stones != current.number_of_stones - stones or new_carat != current.total_carat - carat:
                logger.warning(f"Reduce on {parcel_id} clamped at zero")
            return updated

        parcel = await self._run(parcel_id, apply)
        logger.info(f"Reduced {parcel_id} by {actor.display_name}")
        return parcel

    async def edit(
        self,
        parcel_id: str,
        patch: Mapping[str, Any],
        *,
        comment: str = "",
        actor: Actor | None = None,
    ) -> Parcel:
        """Change descriptive or pricing fields; records an ``Edit`` with zero deltas.

        Raises:
            ValidationError: If the patch is empty, touches quantities or
                lineage, or carries invalid values
        """
        if not patch:
            raise ValidationError("Nothing to edit")
        rejected = sorted(set(patch) - set(EDITABLE_FIELDS))
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(rejected)} "
                "(use add/reduce for quantities; lineage is fixed)"
            )
        try:
            checked = ParcelFields.model_validate(dict(patch))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid edit for {parcel_id}: {e}", original_error=e) from e
        values = checked.model_dump(include=set(patch))
        if "parcel_name" in values and not values["parcel_name"]:
            raise ValidationError("parcel_name cannot be empty")
        actor = actor or Actor.system()

        async def apply(store: ParcelStore, ledger: MovementLedger) -> Parcel:
            updated = await store.update(parcel_id, values)
            await ledger.append(
                parcel_id=parcel_id,
                action=MovementAction.EDIT,
                ct_weight_delta=_ZERO,
                stones_delta=0,
                total_carat=updated.total_carat,
                ct_price=updated.price_per_ct,
                comment=comment,
                actor=actor,
                created_at=self._clock(),
            )
            return updated

        parcel = await self._run(parcel_id, apply)
        logger.info(f"Edited {parcel_id} ({', '.join(sorted(values))}) by {actor.display_name}")
        return parcel

    async def delete(
        self, parcel_id: str, *, comment: str = "", actor: Actor | None = None
    ) -> list[MovementRecord]:
        """Delete a parcel and, for a parent, all of its sub-parcels.

        Sub-parcels go first. Every removed parcel gets one ``Delete`` record
        whose deltas take its remaining stones and carats to zero.

        Returns:
            The ``Delete`` records written, sub-parcels first
        """
        actor = actor or Actor.system()

        async def apply(store: ParcelStore, ledger: MovementLedger) -> list[MovementRecord]:
            parcel = await store.get_by_id(parcel_id)
            doomed = await store.get_children(parcel_id) if parcel.is_parent else []
            doomed.append(parcel)

            records = []
            for victim in doomed:
                await store.delete(victim.parcel_id)
                records.append(
                    await ledger.append(
                        parcel_id=victim.parcel_id,
                        action=MovementAction.DELETE,
                        ct_weight_delta=-victim.total_carat,
                        stones_delta=-victim.number_of_stones,
                        total_carat=_ZERO,
                        ct_price=victim.price_per_ct,
                        comment=comment,
                        actor=actor,
                        created_at=self._clock(),
                    )
                )
            return records

        records = await self._run(parcel_id, apply)
        logger.info(f"Deleted {len(records)} parcel(s) starting from {parcel_id} by {actor.display_name}")
        return records

    async def history(self, parcel_id: str) -> list[MovementRecord]:
        """Ledger entries for ``parcel_id``, newest first (also after deletion)."""
        async with self._session_scope() as session:
            return await MovementLedger(session).history(parcel_id)

    async def _run(
        self,
        parcel_id: str,
        apply: Callable[[ParcelStore, MovementLedger], Awaitable[T]],
    ) -> T:
        """Run ``apply`` in a fresh unit of work, redoing it on version conflicts."""

        def log_conflict(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Parcel {parcel_id} changed concurrently; attempt "
                f"{retry_state.attempt_number}/{self.conflict_retry_attempts} discarded"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.conflict_retry_attempts),
            retry=retry_if_exception_type(StaleDataError),
            before_sleep=log_conflict,
            reraise=True,
        )
        try:
            return await retrying(self._unit_of_work, apply)
        except StaleDataError as e:
            raise ConcurrentModificationError(parcel_id, self.conflict_retry_attempts) from e

    async def _unit_of_work(
        self, apply: Callable[[ParcelStore, MovementLedger], Awaitable[T]]
    ) -> T:
        async with self._session_scope() as session:
            result = await apply(ParcelStore(session), MovementLedger(session))
        return result


def _stones(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Stone count must be a whole number, got {value!r}")
    if value < 0:
        raise ValidationError("Stone count must not be negative")
    return value


def _carat(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"Carat weight must be a number, got {value!r}")
    try:
        carat = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Carat weight must be a number, got {value!r}") from e
    if not carat.is_finite():
        raise ValidationError(f"Carat weight must be a number, got {value!r}")
    if carat < 0:
        raise ValidationError("Carat weight must not be negative")
    # Stored as Numeric(12, 3)
    if carat != carat.quantize(CARAT_PRECISION):
        raise ValidationError(f"Carat weight allows at most 3 decimal places, got {value!r}")
    return carat.quantize(CARAT_PRECISION)
