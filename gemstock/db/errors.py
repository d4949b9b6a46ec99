"""Translate driver-level failures into the gemstock error taxonomy."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from gemstock.exceptions import TransientError

logger = logging.getLogger(__name__)


def is_transient(exc: BaseException) -> bool:
    """Connection drops, lock timeouts and pool exhaustion are worth retrying."""
    if isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    """Re-raise transient SQLAlchemy errors as :class:`TransientError`.

    Usage:
        with translate_storage_errors("create note"):
            await session.flush()
    """
    try:
        yield
    except DBAPIError as e:
        if not is_transient(e):
            raise
        logger.warning(f"Transient storage failure during {operation}: {e}")
        raise TransientError(f"Storage unavailable during {operation}", original_error=e) from e
    except PoolTimeoutError as e:
        logger.warning(f"Connection pool exhausted during {operation}: {e}")
        raise TransientError(f"Storage unavailable during {operation}", original_error=e) from e
