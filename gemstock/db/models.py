"""SQLAlchemy async database models for gemstock.

The parcel hierarchy is depth 1: a child row points at ``(parcel_id, is_parent)``
of its parent through a composite foreign key whose ``parent_is_parent`` half
is pinned to TRUE, so a child can never be the parent of another row.
Ledger rows (``parcel_movements``) deliberately have no foreign key to
``parcels``; they outlive the parcels they describe.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ParcelModel(Base):
    """Diamond parcel (top-level lot or sub-parcel)."""

    __tablename__ = "parcels"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    parcel_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    # Lineage
    is_parent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    parent_parcel_id: Mapped[str | None] = mapped_column(Text, index=True)
    parent_is_parent: Mapped[bool | None] = mapped_column(Boolean)

    parcel_name: Mapped[str] = mapped_column(Text, nullable=False)

    # Quantities
    total_carat: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=0)
    number_of_stones: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Pricing
    price_per_ct: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    ws_price_per_ct: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    # Grading
    carat_category: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str | None] = mapped_column(Text, index=True)
    shape: Mapped[str | None] = mapped_column(Text, index=True)
    clarity: Mapped[str | None] = mapped_column(Text, index=True)
    polish_symmetry: Mapped[str | None] = mapped_column(Text)
    fluorescence: Mapped[str | None] = mapped_column(Text)
    certificate_type: Mapped[str | None] = mapped_column(Text)
    mm: Mapped[Decimal | None] = mapped_column(Numeric(8, 2))

    minimum_level: Mapped[int | None] = mapped_column(Integer)
    is_editable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    comments: Mapped[str | None] = mapped_column(Text)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("parcel_id", "is_parent", name="uq_parcel_kind"),
        ForeignKeyConstraint(
            ["parent_parcel_id", "parent_is_parent"],
            ["parcels.parcel_id", "parcels.is_parent"],
            name="fk_parcel_parent",
            ondelete="CASCADE",
        ),
        CheckConstraint("total_carat >= 0", name="check_carat_non_negative"),
        CheckConstraint("number_of_stones >= 0", name="check_stones_non_negative"),
        CheckConstraint(
            "(is_parent AND parent_parcel_id IS NULL AND parent_is_parent IS NULL) OR "
            "(NOT is_parent AND parent_parcel_id IS NOT NULL AND parent_is_parent)",
            name="check_lineage_shape",
        ),
        Index("idx_parcels_created", "created_at"),
    )


class MovementRecordModel(Base):
    """Append-only ledger of parcel changes."""

    __tablename__ = "parcel_movements"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    parcel_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)

    ct_weight_delta: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    stones_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    total_carat: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    carat_group: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ct_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    actor_id: Mapped[str | None] = mapped_column(Text)
    actor_name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "action IN ('Add', 'Reduce', 'Edit', 'Delete')", name="check_action_valid"
        ),
        Index("idx_movements_parcel_created", "parcel_id", "created_at"),
        Index("idx_movements_created", "created_at"),
    )


@event.listens_for(MovementRecordModel, "before_update")
def _block_ledger_update(mapper, connection, target) -> None:
    raise RuntimeError("parcel_movements rows are immutable")


@event.listens_for(MovementRecordModel, "before_delete")
def _block_ledger_delete(mapper, connection, target) -> None:
    raise RuntimeError("parcel_movements rows are immutable")


class HighlightingSettingsModel(Base):
    """Per-user highlighting configuration."""

    __tablename__ = "highlighting_settings"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    mode: Mapped[str] = mapped_column(Text, nullable=False)
    date_range_days: Mapped[int] = mapped_column(Integer, nullable=False)
    # {"low": {"min", "max", "color"}, "medium": ..., "high": ...}
    frequency_thresholds: Mapped[dict | None] = mapped_column(JSON)
    date_color: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("mode IN ('frequency', 'date')", name="check_mode_valid"),
        CheckConstraint("date_range_days > 0", name="check_range_positive"),
    )


class OrderNoteModel(Base):
    """Customer-facing order note; status values drive email automation."""

    __tablename__ = "order_customer_notes"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_id: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_notes_order_status", "order_id", "status"),)


class OperatorAlertModel(Base):
    """Failures a human has to look at because nothing else will retry them."""

    __tablename__ = "operator_alerts"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(Text, nullable=False)
    resource_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    acknowledged_by: Mapped[str | None] = mapped_column(Text)


class ProfileModel(Base):
    """Staff profile used for display names."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(Text)
    last_name: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
