"""Database layer for gemstock with async SQLAlchemy."""

from gemstock.db.connection import get_session, init_db, session_scope
from gemstock.db.models import (
    Base,
    HighlightingSettingsModel,
    MovementRecordModel,
    OperatorAlertModel,
    OrderNoteModel,
    ParcelModel,
    ProfileModel,
)

__all__ = [
    "Base",
    "ParcelModel",
    "MovementRecordModel",
    "HighlightingSettingsModel",
    "OrderNoteModel",
    "OperatorAlertModel",
    "ProfileModel",
    "get_session",
    "init_db",
    "session_scope",
]
