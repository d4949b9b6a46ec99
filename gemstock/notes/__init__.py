"""Order status notes and operator alerts."""

from gemstock.notes.alerts import OperatorAlertStore
from gemstock.notes.repository import OrderNoteStore
from gemstock.notes.writer import StatusNoteWriter, validate_order_id

__all__ = [
    "OperatorAlertStore",
    "OrderNoteStore",
    "StatusNoteWriter",
    "validate_order_id",
]
