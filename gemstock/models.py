"""gemstock Pydantic models for type-safe data validation.

Parcel lineage is a tagged variant: a parcel is either a top-level lot
(``ParentLineage``) or a sub-parcel drawn from one (``ChildLineage``). There is
no third level.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

# Scale of the carat columns
CARAT_PRECISION = Decimal("0.001")


class MovementAction(str, Enum):
    """Kinds of ledger entries."""

    ADD = "Add"
    REDUCE = "Reduce"
    EDIT = "Edit"
    DELETE = "Delete"


class HighlightMode(str, Enum):
    """How parcels are coloured in the stock table."""

    FREQUENCY = "frequency"
    DATE = "date"


class ParentLineage(BaseModel):
    kind: Literal["parent"] = "parent"


class ChildLineage(BaseModel):
    kind: Literal["child"] = "child"
    parent_parcel_id: str


Lineage = Annotated[Union[ParentLineage, ChildLineage], Field(discriminator="kind")]


class ParcelFields(BaseModel):
    """Descriptive, pricing and quantity fields shared by create and read models."""

    parcel_name: str | None = None
    total_carat: Decimal | None = Field(default=None, ge=0, decimal_places=3)
    number_of_stones: int | None = Field(default=None, ge=0)

    # Pricing (per carat)
    price_per_ct: Decimal | None = Field(default=None, ge=0)
    ws_price_per_ct: Decimal | None = Field(default=None, ge=0)

    # Grading
    carat_category: str | None = None
    color: str | None = None
    shape: str | None = None
    clarity: str | None = None
    polish_symmetry: str | None = None
    fluorescence: str | None = None
    certificate_type: str | None = None
    mm: Decimal | None = None

    minimum_level: int | None = None
    is_editable: bool = True
    comments: str | None = None


# Fields a sub-parcel inherits from its parent when the caller leaves them out
INHERITED_FIELDS = (
    "color",
    "shape",
    "clarity",
    "polish_symmetry",
    "fluorescence",
    "certificate_type",
    "price_per_ct",
    "ws_price_per_ct",
)

# Fields create() insists on
REQUIRED_FIELDS = (
    "parcel_id",
    "parcel_name",
    "total_carat",
    "number_of_stones",
    "price_per_ct",
    "color",
    "shape",
    "clarity",
)

# Fields edit() may touch; quantities only move through add/reduce
EDITABLE_FIELDS = (
    "parcel_name",
    "price_per_ct",
    "ws_price_per_ct",
    "carat_category",
    "color",
    "shape",
    "clarity",
    "polish_symmetry",
    "fluorescence",
    "certificate_type",
    "mm",
    "minimum_level",
    "is_editable",
    "comments",
)


class ParcelCreate(ParcelFields):
    """Input for creating a parcel. ``parent_parcel_id`` makes it a sub-parcel."""

    parcel_id: str | None = None
    parent_parcel_id: str | None = None

    @field_validator("parcel_id", "parent_parcel_id")
    @classmethod
    def strip_ids(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def missing_required(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if getattr(self, name) in (None, "")]


class Parcel(ParcelFields):
    """A stored parcel."""

    parcel_id: str
    lineage: Lineage = Field(default_factory=ParentLineage)
    parcel_name: str
    total_carat: Decimal = Field(ge=0, decimal_places=3)
    number_of_stones: int = Field(ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_parent(self) -> bool:
        return isinstance(self.lineage, ParentLineage)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def parent_parcel_id(self) -> str | None:
        if isinstance(self.lineage, ChildLineage):
            return self.lineage.parent_parcel_id
        return None

    @property
    def total_value(self) -> Decimal:
        return self.total_carat * (self.price_per_ct or Decimal("0"))


class ParcelWithSubParcels(Parcel):
    sub_parcels: list[Parcel] = Field(default_factory=list)


class ParcelSearch(BaseModel):
    """Search criteria for the stock table."""

    parcel_id: str | None = None
    stone_id: str | None = None  # partial match on sub-parcels only
    parcel_name: str | None = None
    shape: str | None = None
    color: str | None = None
    clarity: str | None = None
    carat_weight: str | None = None  # bucket label, e.g. "1.0-1.5"
    price_range: str | None = None  # bucket label, e.g. "$1000-$5000"
    minimum_level: bool = False
    edit_check: bool = False
    sort_by: str | None = None


class InventoryStats(BaseModel):
    total: int
    total_value: Decimal
    average_price: Decimal


class MovementRecord(BaseModel):
    """Immutable ledger entry."""

    id: UUID = Field(default_factory=uuid4)
    parcel_id: str
    action: MovementAction
    ct_weight_delta: Decimal
    stones_delta: int
    total_carat: Decimal  # snapshot after the change
    carat_group: str = ""
    ct_price: Decimal | None = None
    comment: str = ""
    actor_id: str | None = None
    actor_name: str
    created_at: datetime


class UsageAggregate(BaseModel):
    parcel_id: str
    usage_count: int
    first_used: datetime | None = None
    last_used: datetime | None = None


class ParcelHighlight(BaseModel):
    parcel_id: str
    color: str
    usage_count: int = 0
    last_used: datetime | None = None


class FrequencyBand(BaseModel):
    min: int = Field(ge=0)
    max: int = Field(ge=0)
    color: str

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not HEX_COLOR.match(v):
            raise ValueError(f"color must be a #rrggbb hex string, got {v!r}")
        return v.lower()

    @model_validator(mode="after")
    def validate_range(self) -> FrequencyBand:
        if self.max < self.min:
            raise ValueError("band max must be >= band min")
        return self


class FrequencyBands(BaseModel):
    low: FrequencyBand
    medium: FrequencyBand
    high: FrequencyBand

    @model_validator(mode="after")
    def validate_order(self) -> FrequencyBands:
        if not (self.low.min <= self.medium.min <= self.high.min):
            raise ValueError("band minimums must satisfy low <= medium <= high")
        return self


class HighlightingConfig(BaseModel):
    """Per-user highlighting settings, validated before they are stored."""

    mode: HighlightMode = HighlightMode.FREQUENCY
    date_range_days: int = Field(default=30, gt=0, le=3650)
    frequency_thresholds: FrequencyBands | None = None
    date_color: str | None = None

    @field_validator("date_color")
    @classmethod
    def validate_date_color(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not HEX_COLOR.match(v):
            raise ValueError(f"date_color must be a #rrggbb hex string, got {v!r}")
        return v.lower()

    @model_validator(mode="after")
    def validate_mode_fields(self) -> HighlightingConfig:
        if self.mode == HighlightMode.FREQUENCY and self.frequency_thresholds is None:
            raise ValueError("frequency mode requires frequency_thresholds")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "mode": "frequency",
                "date_range_days": 30,
                "frequency_thresholds": {
                    "low": {"min": 1, "max": 2, "color": "#fef3c7"},
                    "medium": {"min": 3, "max": 4, "color": "#fde68a"},
                    "high": {"min": 5, "max": 999, "color": "#f59e0b"},
                },
            }
        }


def default_highlighting_config(date_range_days: int = 30) -> HighlightingConfig:
    """Fallback settings when a user has never saved any."""
    return HighlightingConfig(
        mode=HighlightMode.FREQUENCY,
        date_range_days=date_range_days,
        frequency_thresholds=FrequencyBands(
            low=FrequencyBand(min=1, max=2, color="#fef3c7"),
            medium=FrequencyBand(min=3, max=4, color="#fde68a"),
            high=FrequencyBand(min=5, max=999, color="#f59e0b"),
        ),
    )


class StatusNote(BaseModel):
    """Order annotation whose status value the email automation watches."""

    id: UUID = Field(default_factory=uuid4)
    order_id: str
    status: str
    content: str
    created_by: str
    created_at: datetime | None = None


class OperatorAlert(BaseModel):
    id: UUID
    kind: str
    resource_type: str
    resource_id: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    acknowledged_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.acknowledged_at is None
