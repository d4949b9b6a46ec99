"""Tests for the verified status note writer.

Sleeping is recorded rather than performed, so the retry schedule itself is
asserted.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from gemstock.config import NoteWriterConfig
from gemstock.core.identity import StaticIdentityProvider
from gemstock.exceptions import (
    AuthError,
    NotFoundError,
    TransientError,
    ValidationError,
    VerificationTimeoutError,
)
from gemstock.models import StatusNote
from gemstock.notes.alerts import STATUS_NOTE_UNVERIFIED, OperatorAlertStore
from gemstock.notes.repository import OrderNoteStore
from gemstock.notes.writer import StatusNoteWriter, validate_order_id

ORDER_ID = "3f2b8c1e-9d4a-4b7e-8f21-6c5d0a9e7b13"


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class LostAckNoteStore(OrderNoteStore):
    """Commits the note, then reports a dropped connection the first ``failures`` times."""

    def __init__(self, session_scope, failures: int = 1):
        super().__init__(session_scope)
        self.failures = failures
        self.create_calls = 0

    async def create(self, note):
        self.create_calls += 1
        stored = await super().create(note)
        if self.create_calls <= self.failures:
            raise TransientError("connection reset after commit")
        return stored


class LaggingNoteStore(OrderNoteStore):
    """Stores notes but the status query never sees them."""

    async def list_by_order(self, order_id, status=None):
        return []


class DownNoteStore(OrderNoteStore):
    async def create(self, note):
        raise TransientError("database unavailable")


class BrokenAlertStore(OperatorAlertStore):
    async def raise_alert(self, *args, **kwargs):
        raise TransientError("alerts table unavailable")


@pytest.fixture
def sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def alerts(scope) -> OperatorAlertStore:
    return OperatorAlertStore(scope)


def _writer(notes, alerts, sleep, user_id="u-1") -> StatusNoteWriter:
    return StatusNoteWriter(
        notes, alerts, StaticIdentityProvider(user_id), config=NoteWriterConfig(), sleep=sleep
    )


class TestValidateOrderId:
    def test_accepts_uuid(self):
        assert validate_order_id(f"  {ORDER_ID} ") == ORDER_ID

    @pytest.mark.parametrize("order_id", [None, "", "   ", "manual", "MANUAL", "order-42"])
    def test_rejects_placeholders_and_garbage(self, order_id):
        with pytest.raises(ValidationError):
            validate_order_id(order_id)


class TestStatusNoteWriter:
    @pytest.mark.asyncio
    async def test_writes_exactly_one_verified_note(self, scope, alerts, sleep):
        notes = OrderNoteStore(scope)

        note = await _writer(notes, alerts, sleep).record_casting_order(ORDER_ID, 3)

        assert note.content == "Casting order created with 3 item(s)"
        assert note.status == "Casting Order"
        assert note.created_by == "u-1"
        stored = await notes.list_by_order(ORDER_ID, status="Casting Order")
        assert [n.id for n in stored] == [note.id]
        # Only the read-back settle delay
        assert sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_custom_status(self, scope, alerts, sleep):
        notes = OrderNoteStore(scope)

        note = await _writer(notes, alerts, sleep).write(ORDER_ID, "Shipped today", status="Shipped")

        assert note.status == "Shipped"
        assert await notes.list_by_order(ORDER_ID, status="Casting Order") == []

    @pytest.mark.asyncio
    async def test_lost_ack_is_retried_without_duplicating(self, scope, alerts, sleep):
        notes = LostAckNoteStore(scope, failures=1)

        note = await _writer(notes, alerts, sleep).write(ORDER_ID, "Casting order created with 1 item(s)")

        assert notes.create_calls == 2
        stored = await notes.list_by_order(ORDER_ID)
        assert [n.id for n in stored] == [note.id]
        assert sleep.delays == [1, 0.5]
        assert await alerts.list_open() == []

    @pytest.mark.asyncio
    async def test_unconfirmed_note_raises_and_alerts(self, scope, alerts, sleep):
        notes = LaggingNoteStore(scope)

        with pytest.raises(VerificationTimeoutError) as exc_info:
            await _writer(notes, alerts, sleep).write(ORDER_ID, "Casting order created with 2 item(s)")

        error = exc_info.value
        assert error.order_id == ORDER_ID
        assert error.attempts == 3
        assert error.note_id is not None

        # Re-writes reused the same id, so there is still only one row
        stored = await OrderNoteStore(scope).list_by_order(ORDER_ID)
        assert [str(n.id) for n in stored] == [error.note_id]

        [alert] = await alerts.list_open(STATUS_NOTE_UNVERIFIED)
        assert alert.resource_id == ORDER_ID
        assert alert.details["note_id"] == error.note_id
        assert alert.details["attempts"] == 3

        # settle, read-back ok, status query 1s+2s, then outer backoff 1s/2s
        assert sleep.delays == [0.5, 1, 2, 1, 0.5, 1, 2, 2, 0.5, 1, 2]

    @pytest.mark.asyncio
    async def test_storage_down_raises_timeout(self, scope, alerts, sleep):
        with pytest.raises(VerificationTimeoutError) as exc_info:
            await _writer(DownNoteStore(scope), alerts, sleep).write(ORDER_ID, "hello")

        assert isinstance(exc_info.value.original_error, TransientError)
        assert sleep.delays == [1, 2]
        assert len(await alerts.list_open(STATUS_NOTE_UNVERIFIED)) == 1

    @pytest.mark.asyncio
    async def test_alert_failure_still_raises_timeout(self, scope, sleep):
        writer = _writer(DownNoteStore(scope), BrokenAlertStore(scope), sleep)

        with pytest.raises(VerificationTimeoutError) as exc_info:
            await writer.write(ORDER_ID, "hello")

        assert exc_info.value.order_id == ORDER_ID

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order_id", ["manual", "", "12345"])
    async def test_bad_order_id_fails_fast(self, scope, alerts, sleep, order_id):
        notes = OrderNoteStore(scope)

        with pytest.raises(ValidationError):
            await _writer(notes, alerts, sleep).write(order_id, "hello")

        assert sleep.delays == []
        assert await alerts.list_open() == []

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, scope, alerts, sleep):
        with pytest.raises(ValidationError):
            await _writer(OrderNoteStore(scope), alerts, sleep).write(ORDER_ID, "   ")

    @pytest.mark.asyncio
    async def test_requires_signed_in_user(self, scope, alerts, sleep):
        notes = OrderNoteStore(scope)

        with pytest.raises(AuthError):
            await _writer(notes, alerts, sleep, user_id=None).write(ORDER_ID, "hello")

        assert await notes.list_by_order(ORDER_ID) == []


class TestOrderNoteStore:
    @pytest.mark.asyncio
    async def test_create_is_idempotent_by_id(self, scope):
        notes = OrderNoteStore(scope)
        note = StatusNote(order_id=ORDER_ID, status="Casting Order", content="x", created_by="u-1")

        first = await notes.create(note)
        second = await notes.create(note)

        assert first.id == second.id
        assert len(await notes.list_by_order(ORDER_ID)) == 1

    @pytest.mark.asyncio
    async def test_id_reused_for_another_order_rejected(self, scope):
        notes = OrderNoteStore(scope)
        note = StatusNote(order_id=ORDER_ID, status="Casting Order", content="x", created_by="u-1")
        await notes.create(note)

        with pytest.raises(ValidationError):
            await notes.create(note.model_copy(update={"order_id": "other"}))


class TestOperatorAlertStore:
    @pytest.mark.asyncio
    async def test_acknowledge_closes_alert(self, alerts):
        alert = await alerts.raise_alert("status_note_unverified", "order", ORDER_ID, "check it")

        acked = await alerts.acknowledge(alert.id, "u-9")
        again = await alerts.acknowledge(alert.id, "u-10")

        assert acked.is_open is False
        # Second acknowledgement keeps the first timestamp (SQLite returns it naive)
        assert again.acknowledged_at.replace(tzinfo=None) == acked.acknowledged_at.replace(tzinfo=None)
        assert await alerts.list_open() == []

    @pytest.mark.asyncio
    async def test_acknowledge_unknown(self, alerts):
        with pytest.raises(NotFoundError):
            await alerts.acknowledge(uuid4(), "u-9")
