"""Diamond parcel inventory: store, movement ledger and mutation engine."""

from gemstock.inventory.ledger import MovementLedger, carat_group
from gemstock.inventory.repository import ParcelStore
from gemstock.inventory.service import StockMutationEngine

__all__ = [
    "MovementLedger",
    "ParcelStore",
    "StockMutationEngine",
    "carat_group",
]
