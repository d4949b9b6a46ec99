"""Parcel inventory routes.

Routes:
- GET    /parcels                          - Search/list parcels
- GET    /parcels/hierarchy                - Parents with their sub-parcels
- GET    /parcels/stats                    - Count, total value, average value
- GET    /parcels/{parcel_id}              - One parcel
- GET    /parcels/{parcel_id}/children     - Sub-parcels of a parent
- GET    /parcels/{parcel_id}/history      - Ledger entries, newest first
- POST   /parcels                          - Create a top-level parcel
- POST   /parcels/{parcel_id}/subcategories - Create a sub-parcel
- POST   /parcels/{parcel_id}/add          - Add stones/carats
- POST   /parcels/{parcel_id}/reduce       - Reduce stones/carats
- PATCH  /parcels/{parcel_id}              - Edit descriptive/pricing fields
- DELETE /parcels/{parcel_id}              - Delete (cascades to sub-parcels)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from gemstock.core.identity import Actor
from gemstock.db.connection import SessionScope
from gemstock.inventory.repository import ParcelStore
from gemstock.inventory.service import StockMutationEngine
from gemstock.models import (
    InventoryStats,
    MovementRecord,
    Parcel,
    ParcelCreate,
    ParcelSearch,
    ParcelWithSubParcels,
)
from gemstock.web.dependencies import get_session_scope, get_stock_engine, require_actor
from gemstock.web.models import EditRequest, QuantityChangeRequest

router = APIRouter(prefix="/parcels", tags=["parcels"])


@router.get("", response_model=list[Parcel])
async def list_parcels(
    parcel_id: str | None = None,
    stone_id: str | None = None,
    parcel_name: str | None = None,
    shape: str | None = None,
    color: str | None = None,
    clarity: str | None = None,
    carat_weight: str | None = None,
    price_range: str | None = None,
    minimum_level: bool = False,
    edit_check: bool = False,
    sort_by: str | None = Query(default=None, description="e.g. 'Price: Low to High'"),
    scope: SessionScope = Depends(get_session_scope),
):
    criteria = ParcelSearch(
        parcel_id=parcel_id,
        stone_id=stone_id,
        parcel_name=parcel_name,
        shape=shape,
        color=color,
        clarity=clarity,
        carat_weight=carat_weight,
        price_range=price_range,
        minimum_level=minimum_level,
        edit_check=edit_check,
        sort_by=sort_by,
    )
    async with scope() as session:
        return await ParcelStore(session).search(criteria)


@router.get("/hierarchy", response_model=list[ParcelWithSubParcels])
async def parcel_hierarchy(scope: SessionScope = Depends(get_session_scope)):
    async with scope() as session:
        return await ParcelStore(session).get_hierarchy()


@router.get("/stats", response_model=InventoryStats)
async def parcel_stats(scope: SessionScope = Depends(get_session_scope)):
    async with scope() as session:
        return await ParcelStore(session).stats()


@router.get("/{parcel_id}", response_model=Parcel)
async def get_parcel(parcel_id: str, scope: SessionScope = Depends(get_session_scope)):
    async with scope() as session:
        return await ParcelStore(session).get_by_id(parcel_id)


@router.get("/{parcel_id}/children", response_model=list[Parcel])
async def get_children(parcel_id: str, scope: SessionScope = Depends(get_session_scope)):
    async with scope() as session:
        store = ParcelStore(session)
        await store.get_by_id(parcel_id)
        return await store.get_children(parcel_id)


@router.get("/{parcel_id}/history", response_model=list[MovementRecord])
async def parcel_history(
    parcel_id: str, engine: StockMutationEngine = Depends(get_stock_engine)
):
    """History outlives the parcel, so unknown ids return an empty list."""
    return await engine.history(parcel_id)


@router.post("", response_model=Parcel, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    data: ParcelCreate,
    actor: Actor = Depends(require_actor),
    engine: StockMutationEngine = Depends(get_stock_engine),
):
    return await engine.create_parcel(data)


@router.post(
    "/{parcel_id}/subcategories", response_model=Parcel, status_code=status.HTTP_201_CREATED
)
async def create_subcategory(
    parcel_id: str,
    data: ParcelCreate,
    actor: Actor = Depends(require_actor),
    engine: StockMutationEngine = Depends(get_stock_engine),
):
    return await engine.create_subcategory(parcel_id, data)


@router.post("/{parcel_id}/add", response_model=Parcel)
async def add_stock(
    parcel_id: str,
    body: QuantityChangeRequest,
    actor: Actor = Depends(require_actor),
    engine: StockMutationEngine = Depends(get_stock_engine),
):
    return await engine.add(
        parcel_id,
        stones_delta=body.stones_delta,
        carat_delta=body.carat_delta,
        comment=body.comment,
        actor=actor,
    )


@router.post("/{parcel_id}/reduce", response_model=Parcel)
async def reduce_stock(
    parcel_id: str,
    body: QuantityChangeRequest,
    actor: Actor = Depends(require_actor),
    engine: StockMutationEngine = Depends(get_stock_engine),
):
    return await engine.reduce(
        parcel_id,
        stones_delta=body.stones_delta,
        carat_delta=body.carat_delta,
        comment=body.comment,
        actor=actor,
    )


@router.patch("/{parcel_id}", response_model=Parcel)
async def edit_parcel(
    parcel_id: str,
    body: EditRequest,
    actor: Actor = Depends(require_actor),
    engine: StockMutationEngine = Depends(get_stock_engine),
):
    return await engine.edit(parcel_id, body.fields, comment=body.comment, actor=actor)


@router.delete("/{parcel_id}", response_model=list[MovementRecord])
async def delete_parcel(
    parcel_id: str,
    comment: str = "",
    actor: Actor = Depends(require_actor),
    engine: StockMutationEngine = Depends(get_stock_engine),
):
    """Returns the ledger entries written, one per removed parcel."""
    return await engine.delete(parcel_id, comment=comment, actor=actor)
