"""Per-user highlighting settings persistence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gemstock.db.errors import translate_storage_errors
from gemstock.db.models import HighlightingSettingsModel
from gemstock.exceptions import AuthError, ValidationError
from gemstock.models import HighlightingConfig, default_highlighting_config

logger = logging.getLogger(__name__)


def get_default_settings() -> HighlightingConfig:
    """Frequency mode over 30 days with the stock amber bands."""
    return default_highlighting_config()


class HighlightingSettingsStore:
    """Typed load/save/clear of :class:`HighlightingConfig` keyed by user."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, user_id: str) -> HighlightingConfig:
        """Stored settings for ``user_id``, or the defaults if there are none."""
        _require_user(user_id)
        model = await self._get(user_id)
        if model is None:
            return get_default_settings()

        try:
            return HighlightingConfig(
                mode=model.mode,
                date_range_days=model.date_range_days,
                frequency_thresholds=model.frequency_thresholds,
                date_color=model.date_color,
            )
        except PydanticValidationError as e:
            # Rows written before validation existed; the next save replaces them
            logger.warning(f"Stored highlighting settings for {user_id} are invalid, using defaults: {e}")
            return get_default_settings()

    async def save(
        self, user_id: str, config: HighlightingConfig | Mapping[str, Any]
    ) -> HighlightingConfig:
        """Validate and upsert settings for ``user_id``.

        Raises:
            AuthError: If ``user_id`` is empty
            ValidationError: If the settings are malformed
        """
        _require_user(user_id)
        if not isinstance(config, HighlightingConfig):
            try:
                config = HighlightingConfig.model_validate(dict(config))
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid highlighting settings: {e}", original_error=e) from e

        thresholds = (
            config.frequency_thresholds.model_dump() if config.frequency_thresholds else None
        )
        now = datetime.now(timezone.utc)

        model = await self._get(user_id)
        if model is None:
            model = HighlightingSettingsModel(user_id=user_id, created_at=now)
            self.session.add(model)

        model.mode = config.mode.value
        model.date_range_days = config.date_range_days
        model.frequency_thresholds = thresholds
        model.date_color = config.date_color
        model.updated_at = now

        with translate_storage_errors("save highlighting settings"):
            await self.session.flush()

        logger.info(f"Saved highlighting settings for {user_id} (mode={config.mode.value})")
        return config

    async def clear(self, user_id: str) -> bool:
        """Drop stored settings; returns whether anything was removed."""
        _require_user(user_id)
        stmt = delete(HighlightingSettingsModel).where(HighlightingSettingsModel.user_id == user_id)
        with translate_storage_errors("clear highlighting settings"):
            result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def _get(self, user_id: str) -> HighlightingSettingsModel | None:
        stmt = select(HighlightingSettingsModel).where(HighlightingSettingsModel.user_id == user_id)
        with translate_storage_errors("load highlighting settings"):
            result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


def _require_user(user_id: str | None) -> None:
    if not user_id:
        raise AuthError("Highlighting settings need a signed-in user")
