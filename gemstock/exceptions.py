"""Error taxonomy for gemstock.

Only ``TransientError`` (and subclasses) is ever retried. Everything else is
raised straight to the caller for display.
"""

from __future__ import annotations


class GemStockError(Exception):
    """Base exception for gemstock errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(GemStockError):
    """Raised when input is missing or malformed."""


class NotFoundError(GemStockError):
    """Raised when a parcel, note or setting does not exist."""


class AuthError(GemStockError):
    """Raised when no acting identity can be resolved."""


class PermissionDeniedError(GemStockError):
    """Raised when the acting identity may not perform the operation."""


class TransientError(GemStockError):
    """Raised for storage I/O failures that may succeed on retry."""


class UnconfirmedWriteError(TransientError):
    """Raised when a write returned but could not be observed afterwards."""


class ConcurrentModificationError(TransientError):
    """Raised when a parcel kept changing underneath a quantity update."""

    def __init__(self, parcel_id: str, attempts: int):
        super().__init__(
            f"Parcel {parcel_id} was modified concurrently; "
            f"gave up after {attempts} attempt(s)"
        )
        self.parcel_id = parcel_id
        self.attempts = attempts


class VerificationTimeoutError(GemStockError):
    """Raised when a write could not be confirmed within its retry budget.

    The write may well have succeeded. Callers must surface this to an
    operator; nothing else will retry on their behalf.
    """

    def __init__(
        self,
        message: str,
        *,
        order_id: str | None = None,
        note_id: str | None = None,
        attempts: int = 0,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.order_id = order_id
        self.note_id = note_id
        self.attempts = attempts
