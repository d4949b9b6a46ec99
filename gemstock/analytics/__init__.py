"""Parcel usage analytics and highlighting settings."""

from gemstock.analytics.service import UsageAnalyticsEngine
from gemstock.analytics.settings import HighlightingSettingsStore, get_default_settings

__all__ = [
    "HighlightingSettingsStore",
    "UsageAnalyticsEngine",
    "get_default_settings",
]
