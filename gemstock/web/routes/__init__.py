"""gemstock web route modules.

Each module exports a ``router`` (APIRouter) that ``gemstock.web.app`` includes.
"""

from gemstock.web.routes import analytics, health, notes, parcels

__all__ = [
    "analytics",
    "health",
    "notes",
    "parcels",
]
