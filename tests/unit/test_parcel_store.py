"""Tests for parcel persistence, search and lineage rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from gemstock.exceptions import NotFoundError, ValidationError
from gemstock.inventory.repository import ParcelStore
from gemstock.models import ParcelCreate, ParcelSearch

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _child(parcel_id: str, parent_id: str, **overrides) -> ParcelCreate:
    values = dict(
        parcel_id=parcel_id,
        parent_parcel_id=parent_id,
        parcel_name=f"Pick {parcel_id}",
        total_carat=Decimal("1.200"),
        number_of_stones=1,
        price_per_ct=Decimal("1500.00"),
        color="G",
        shape="Round",
        clarity="VS1",
    )
    values.update(overrides)
    return ParcelCreate(**values)


@pytest.fixture
def store(db_session) -> ParcelStore:
    return ParcelStore(db_session)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_parent(self, store, parent_parcel_data):
        parcel = await store.create(parent_parcel_data, created_at=T0)

        assert parcel.parcel_id == "P-100"
        assert parcel.is_parent is True
        assert parcel.total_carat == Decimal("12.500")
        assert (await store.get_by_id("P-100")).number_of_stones == 10

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, store):
        with pytest.raises(ValidationError, match="price_per_ct"):
            await store.create(
                ParcelCreate(
                    parcel_id="P-1",
                    parcel_name="Lot",
                    total_carat=Decimal("1"),
                    number_of_stones=1,
                    color="G",
                    shape="Round",
                    clarity="VS1",
                )
            )

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, store, parent_parcel_data):
        await store.create(parent_parcel_data)

        with pytest.raises(ValidationError, match="already exists"):
            await store.create(parent_parcel_data)

    @pytest.mark.asyncio
    async def test_child_records_lineage(self, store, parent_parcel_data):
        await store.create(parent_parcel_data)

        child = await store.create(_child("P-100-A", "P-100"))

        assert child.is_parent is False
        assert child.parent_parcel_id == "P-100"

    @pytest.mark.asyncio
    async def test_unknown_parent_rejected(self, store):
        with pytest.raises(ValidationError, match="not found"):
            await store.create(_child("X-1", "MISSING"))

    @pytest.mark.asyncio
    async def test_grandchild_rejected(self, store, parent_parcel_data):
        await store.create(parent_parcel_data)
        await store.create(_child("P-100-A", "P-100"))

        with pytest.raises(ValidationError, match="cannot have sub-parcels"):
            await store.create(_child("P-100-A-1", "P-100-A"))


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields(self, store, parent_parcel_data):
        await store.create(parent_parcel_data)

        parcel = await store.update("P-100", {"color": "F", "number_of_stones": 8})

        assert parcel.color == "F"
        assert parcel.number_of_stones == 8
        assert parcel.updated_at is not None

    @pytest.mark.asyncio
    async def test_lineage_is_not_updatable(self, store, parent_parcel_data):
        await store.create(parent_parcel_data)

        with pytest.raises(ValidationError, match="parent_parcel_id"):
            await store.update("P-100", {"parent_parcel_id": "P-200"})

    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(self, store, parent_parcel_data):
        await store.create(parent_parcel_data)

        with pytest.raises(ValidationError):
            await store.update("P-100", {"total_carat": Decimal("-0.1")})

    @pytest.mark.asyncio
    async def test_update_unknown_parcel(self, store):
        with pytest.raises(NotFoundError):
            await store.update("NOPE", {"color": "D"})


class TestReads:
    @pytest.mark.asyncio
    async def test_get_by_id_unknown(self, store):
        with pytest.raises(NotFoundError):
            await store.get_by_id("NOPE")
        assert await store.find("NOPE") is None

    @pytest.mark.asyncio
    async def test_get_all_newest_first(self, store, parent_parcel_data, second_parcel_data):
        await store.create(parent_parcel_data, created_at=T0)
        await store.create(second_parcel_data, created_at=T0 + timedelta(hours=1))

        assert [p.parcel_id for p in await store.get_all()] == ["P-200", "P-100"]

    @pytest.mark.asyncio
    async def test_hierarchy_nests_children(self, store, parent_parcel_data, second_parcel_data):
        await store.create(parent_parcel_data, created_at=T0)
        await store.create(second_parcel_data, created_at=T0 + timedelta(hours=1))
        await store.create(_child("P-100-B", "P-100"), created_at=T0 + timedelta(hours=2))
        await store.create(_child("P-100-A", "P-100"), created_at=T0 + timedelta(hours=3))

        hierarchy = await store.get_hierarchy()

        assert [p.parcel_id for p in hierarchy] == ["P-200", "P-100"]
        assert hierarchy[0].sub_parcels == []
        assert [c.parcel_id for c in hierarchy[1].sub_parcels] == ["P-100-A", "P-100-B"]

    @pytest.mark.asyncio
    async def test_children_and_ids(self, store, parent_parcel_data, second_parcel_data):
        await store.create(parent_parcel_data)
        await store.create(second_parcel_data)
        await store.create(_child("P-100-A", "P-100"))

        assert [c.parcel_id for c in await store.get_children("P-100")] == ["P-100-A"]
        assert await store.get_children("P-200") == []
        assert await store.get_all_parcel_ids() == ["P-100", "P-100-A", "P-200"]

    @pytest.mark.asyncio
    async def test_delete_returns_snapshot(self, store, second_parcel_data):
        await store.create(second_parcel_data)

        snapshot = await store.delete("P-200")

        assert snapshot.number_of_stones == 30
        assert await store.find("P-200") is None

    @pytest.mark.asyncio
    async def test_stats(self, store, parent_parcel_data, second_parcel_data):
        await store.create(parent_parcel_data)
        await store.create(second_parcel_data)

        stats = await store.stats()

        # 12.5 * 1500 + 0.75 * 800
        assert stats.total == 2
        assert stats.total_value == Decimal("19350.00")
        assert stats.average_price == Decimal("9675.00")

    @pytest.mark.asyncio
    async def test_stats_empty(self, store):
        stats = await store.stats()

        assert stats.total == 0
        assert stats.total_value == Decimal("0.00")
        assert stats.average_price == Decimal("0.00")


class TestSearch:
    @pytest_asyncio.fixture
    async def seeded(self, store, parent_parcel_data, second_parcel_data):
        await store.create(parent_parcel_data, created_at=T0)
        await store.create(second_parcel_data, created_at=T0 + timedelta(hours=1))
        await store.create(
            _child("P-100-A", "P-100", total_carat=Decimal("1.200"), price_per_ct=Decimal("3000")),
            created_at=T0 + timedelta(hours=2),
        )
        return store

    @pytest.mark.asyncio
    async def test_partial_text_match(self, seeded):
        result = await seeded.search(ParcelSearch(parcel_name="oval"))

        assert [p.parcel_id for p in result] == ["P-200"]

    @pytest.mark.asyncio
    async def test_stone_id_matches_sub_parcels_only(self, seeded):
        result = await seeded.search(ParcelSearch(stone_id="P-100"))

        assert [p.parcel_id for p in result] == ["P-100-A"]

    @pytest.mark.asyncio
    async def test_exact_grading_filters(self, seeded):
        result = await seeded.search(ParcelSearch(shape="Round", color="G"))

        assert {p.parcel_id for p in result} == {"P-100", "P-100-A"}

    @pytest.mark.asyncio
    async def test_carat_bucket(self, seeded):
        result = await seeded.search(ParcelSearch(carat_weight="1.0-1.5"))

        assert [p.parcel_id for p in result] == ["P-100-A"]

    @pytest.mark.asyncio
    async def test_price_bucket(self, seeded):
        result = await seeded.search(ParcelSearch(price_range="$0-$1000"))

        assert [p.parcel_id for p in result] == ["P-200"]

    @pytest.mark.asyncio
    async def test_unknown_bucket_rejected(self, seeded):
        with pytest.raises(ValidationError):
            await seeded.search(ParcelSearch(carat_weight="huge"))
        with pytest.raises(ValidationError):
            await seeded.search(ParcelSearch(price_range="cheap"))

    @pytest.mark.asyncio
    async def test_sort_orders(self, seeded):
        by_price = await seeded.search(ParcelSearch(sort_by="Price: High to Low"))
        by_carat = await seeded.search(ParcelSearch(sort_by="Carat: Low to High"))
        fallback = await seeded.search(ParcelSearch(sort_by="Something else"))

        assert [p.parcel_id for p in by_price] == ["P-100-A", "P-100", "P-200"]
        assert [p.parcel_id for p in by_carat] == ["P-200", "P-100-A", "P-100"]
        assert [p.parcel_id for p in fallback] == ["P-100-A", "P-200", "P-100"]
