"""Status note writer.

The email automation only fires when it finds a note with a given status on an
order, so a note that was "probably written" is not good enough. The writer
writes the note under an id chosen up front, reads it back by id, then checks
that the order's notes filtered by status (the automation's own query) include
it. Any step that cannot see the note makes the attempt transient and the
whole sequence is retried. When the budget runs out an operator alert is
stored and :class:`VerificationTimeoutError` is raised.
"""

from __future__ import annotations

import asyncio
import re
from uuid import UUID, uuid4

import structlog

from gemstock.config import NoteWriterConfig, get_config
from gemstock.core.identity import IdentityProvider
from gemstock.core.retry import RetryingWriter, RetryPolicy, Sleep, Verifier
from gemstock.exceptions import AuthError, ValidationError, VerificationTimeoutError
from gemstock.models import StatusNote
from gemstock.notes.alerts import STATUS_NOTE_UNVERIFIED, OperatorAlertStore
from gemstock.notes.repository import OrderNoteStore

logger = structlog.get_logger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

# Placeholder ids used by manual casting entries; never real orders
PLACEHOLDER_ORDER_IDS = frozenset({"manual"})


def validate_order_id(order_id: str | None) -> str:
    """Return the trimmed order id or raise :class:`ValidationError`."""
    candidate = (order_id or "").strip()
    if not candidate or candidate.lower() in PLACEHOLDER_ORDER_IDS:
        raise ValidationError(f"Invalid order_id for status note: {order_id!r}")
    if not UUID_PATTERN.match(candidate):
        raise ValidationError(f"order_id is not a valid UUID: {order_id!r}")
    return candidate


class StatusNoteWriter:
    """Durably records one status note per call and proves it is visible.

    Args:
        notes: Order notes store
        alerts: Where exhausted writes are reported
        identity: Supplies the acting user; required
        config: Status value and retry budgets (from app config when omitted)
        sleep: Awaitable sleep; tests pass a recorder
    """

    def __init__(
        self,
        notes: OrderNoteStore,
        alerts: OperatorAlertStore,
        identity: IdentityProvider,
        config: NoteWriterConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.notes = notes
        self.alerts = alerts
        self.identity = identity
        self.config = config or get_config().notes
        self._sleep = sleep

    async def write(
        self,
        order_id: str,
        content: str,
        *,
        status: str | None = None,
        note_id: UUID | None = None,
    ) -> StatusNote:
        """Write and verify a status note.

        Raises:
            ValidationError: Bad order id or empty content (not retried)
            AuthError: No signed-in user (not retried)
            VerificationTimeoutError: Not confirmed within the retry budget
        """
        order_id = validate_order_id(order_id)
        if not content or not content.strip():
            raise ValidationError("Status note content is required")

        user_id = await self.identity.current_user_id()
        if not user_id:
            raise AuthError("User not authenticated; unable to create status note")

        status = status or self.config.status
        note = StatusNote(
            id=note_id or uuid4(),
            order_id=order_id,
            status=status,
            content=content.strip(),
            created_by=user_id,
        )
        log = logger.bind(order_id=order_id, note_id=str(note.id), status=status)

        writer = RetryingWriter(
            RetryPolicy.exponential(
                self.config.max_attempts, self.config.backoff_initial, self.config.backoff_max
            ),
            [
                Verifier(
                    name="read-back",
                    check=self._readable,
                    policy=RetryPolicy.exponential(
                        self.config.readback_attempts,
                        self.config.readback_initial_wait,
                        self.config.readback_max_wait,
                    ),
                    settle_seconds=self.config.readback_settle_seconds,
                ),
                Verifier(
                    name="status query",
                    check=self._listed_under_status,
                    policy=RetryPolicy.linear(
                        self.config.final_check_attempts, self.config.final_check_wait_step
                    ),
                ),
            ],
            sleep=self._sleep,
            label=f"status note for order {order_id}",
        )

        async def create() -> StatusNote:
            log.info("status_note_write")
            return await self.notes.create(note)

        try:
            stored = await writer.run(create)
        except VerificationTimeoutError as e:
            await self._report(note, e)
            raise VerificationTimeoutError(
                f"Status note '{status}' for order {order_id} could not be confirmed "
                f"after {e.attempts} attempt(s)",
                order_id=order_id,
                note_id=str(note.id),
                attempts=e.attempts,
                original_error=e.original_error,
            ) from e

        log.info("status_note_verified")
        return stored

    async def record_casting_order(self, order_id: str, item_count: int) -> StatusNote:
        """The note the casting module writes once a casting order is placed."""
        return await self.write(order_id, f"Casting order created with {item_count} item(s)")

    async def _readable(self, note: StatusNote) -> bool:
        stored = await self.notes.get_by_id(note.id)
        return stored is not None and stored.status == note.status

    async def _listed_under_status(self, note: StatusNote) -> bool:
        listed = await self.notes.list_by_order(note.order_id, status=note.status)
        return any(item.id == note.id for item in listed)

    async def _report(self, note: StatusNote, error: VerificationTimeoutError) -> None:
        logger.error(
            "status_note_unverified",
            order_id=note.order_id,
            note_id=str(note.id),
            status=note.status,
            attempts=error.attempts,
            error=str(error.original_error or error),
        )
        try:
            await self.alerts.raise_alert(
                kind=STATUS_NOTE_UNVERIFIED,
                resource_type="order",
                resource_id=note.order_id,
                message=(
                    f"Status '{note.status}' could not be confirmed; the customer email "
                    "will not be sent. Update the order status manually."
                ),
                details={
                    "note_id": str(note.id),
                    "status": note.status,
                    "attempts": error.attempts,
                    "error": str(error.original_error or error),
                },
            )
        except Exception:
            # The caller still gets VerificationTimeoutError with the order id
            logger.exception("operator_alert_failed", order_id=note.order_id, note_id=str(note.id))
