"""Usage derivation over a ledger snapshot.

Pure functions: no I/O, no clock. The service layer fetches the snapshot and
passes ``now`` in.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone

from gemstock.config import HighlightingDefaults
from gemstock.models import (
    FrequencyBands,
    HighlightingConfig,
    HighlightMode,
    MovementRecord,
    ParcelHighlight,
    UsageAggregate,
)

NEUTRAL_COLOR = HighlightingDefaults.neutral_color
DEFAULT_DATE_COLOR = HighlightingDefaults.date_color


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (SQLite hands these back) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_start(now: datetime, date_range_days: int) -> datetime:
    return as_utc(now) - timedelta(days=date_range_days)


def aggregate_usage(
    records: Iterable[MovementRecord], since: datetime | None = None
) -> list[UsageAggregate]:
    """Group ledger entries per parcel, counting every entry as one use.

    Entries before ``since`` are ignored. Output is ordered by parcel id.
    """
    start = as_utc(since) if since is not None else None
    usage: dict[str, UsageAggregate] = {}

    for record in records:
        when = as_utc(record.created_at)
        if start is not None and when < start:
            continue

        entry = usage.get(record.parcel_id)
        if entry is None:
            usage[record.parcel_id] = UsageAggregate(
                parcel_id=record.parcel_id, usage_count=1, first_used=when, last_used=when
            )
            continue

        entry.usage_count += 1
        if entry.last_used is None or when > entry.last_used:
            entry.last_used = when
        if entry.first_used is None or when < entry.first_used:
            entry.first_used = when

    return [usage[parcel_id] for parcel_id in sorted(usage)]


def frequency_color(
    usage_count: int, bands: FrequencyBands, neutral_color: str = NEUTRAL_COLOR
) -> str:
    # Highest band wins; max bounds are not consulted
    for band in (bands.high, bands.medium, bands.low):
        if usage_count >= band.min:
            return band.color
    return neutral_color


def build_highlights(
    usage: Sequence[UsageAggregate],
    config: HighlightingConfig,
    *,
    neutral_color: str = NEUTRAL_COLOR,
    default_date_color: str = DEFAULT_DATE_COLOR,
) -> list[ParcelHighlight]:
    """One highlight per parcel that has usage in the window."""
    if config.mode == HighlightMode.FREQUENCY:
        bands = config.frequency_thresholds
        if bands is None:
            raise ValueError("Frequency thresholds not configured")
        return [
            ParcelHighlight(
                parcel_id=item.parcel_id,
                color=frequency_color(item.usage_count, bands, neutral_color),
                usage_count=item.usage_count,
                last_used=item.last_used,
            )
            for item in usage
        ]

    date_color = config.date_color or default_date_color
    return [
        ParcelHighlight(
            parcel_id=item.parcel_id,
            color=date_color,
            usage_count=item.usage_count,
            last_used=item.last_used,
        )
        for item in usage
    ]


def complete_highlights(
    highlights: Sequence[ParcelHighlight],
    parcel_ids: Iterable[str],
    neutral_color: str = NEUTRAL_COLOR,
) -> list[ParcelHighlight]:
    """Exactly one entry per distinct catalogue id, in catalogue order.

    Ids without usage get the neutral colour and a zero count. Usage for ids no
    longer in the catalogue (deleted parcels) is dropped.
    """
    by_id = {highlight.parcel_id: highlight for highlight in highlights}
    result: list[ParcelHighlight] = []
    seen: set[str] = set()

    for parcel_id in parcel_ids:
        if parcel_id in seen:
            continue
        seen.add(parcel_id)
        result.append(
            by_id.get(parcel_id)
            or ParcelHighlight(parcel_id=parcel_id, color=neutral_color, usage_count=0)
        )

    return result
