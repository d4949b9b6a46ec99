"""Parcel usage analytics and highlighting."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from gemstock.analytics.usage import (
    aggregate_usage,
    build_highlights,
    complete_highlights,
    window_start,
)
from gemstock.config import HighlightingDefaults, get_config
from gemstock.exceptions import ValidationError
from gemstock.inventory.ledger import MovementLedger
from gemstock.inventory.repository import ParcelStore, utcnow
from gemstock.models import HighlightingConfig, ParcelHighlight, UsageAggregate

logger = logging.getLogger(__name__)


class UsageAnalyticsEngine:
    """Derives per-parcel usage from the ledger and maps it to table colours.

    Args:
        session: Session used for the ledger scan and the parcel catalogue
        clock: Returns "now"; tests pin it
        defaults: Neutral/date colours (from config when omitted)
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        defaults: HighlightingDefaults | None = None,
    ):
        self.session = session
        self.clock = clock
        self.defaults = defaults or get_config().highlighting

    async def get_parcel_usage_data(self, date_range_days: int) -> list[UsageAggregate]:
        if date_range_days <= 0:
            raise ValidationError("date_range_days must be positive")

        since = window_start(self.clock(), date_range_days)
        records = await MovementLedger(self.session).scan_since(since)
        usage = aggregate_usage(records, since=since)
        logger.debug(f"Usage for {len(usage)} parcel(s) since {since.isoformat()}")
        return usage

    async def generate_highlighting_data(self, config: HighlightingConfig) -> list[ParcelHighlight]:
        """Highlights for parcels used inside the config's window only."""
        usage = await self.get_parcel_usage_data(config.date_range_days)
        return build_highlights(
            usage,
            config,
            neutral_color=self.defaults.neutral_color,
            default_date_color=self.defaults.date_color,
        )

    async def get_all_parcel_ids(self) -> list[str]:
        return await ParcelStore(self.session).get_all_parcel_ids()

    async def generate_complete_highlighting_data(
        self, config: HighlightingConfig
    ) -> list[ParcelHighlight]:
        """One highlight for every parcel in the catalogue, used or not."""
        highlights = await self.generate_highlighting_data(config)
        parcel_ids = await self.get_all_parcel_ids()
        complete = complete_highlights(highlights, parcel_ids, self.defaults.neutral_color)
        logger.info(
            f"Generated highlighting for {len(complete)} parcel(s) "
            f"({len(highlights)} used in last {config.date_range_days} days)"
        )
        return complete
