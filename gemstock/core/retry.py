"""Retrying idempotent writer.

A write is only reported as done once every verifier has observed it. Each
verifier polls with its own small budget to absorb read-after-write lag; a
verifier that never sees the write turns the whole attempt into a transient
failure, and the outer loop writes again. The write function must therefore be
idempotent (re-running it must not create a second record).

Sleeping goes through an injectable coroutine so tests can run the whole
schedule against a simulated clock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
    wait_none,
)
from tenacity.wait import wait_base

from gemstock.exceptions import TransientError, UnconfirmedWriteError, VerificationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget plus the wait between attempts."""

    max_attempts: int
    wait: wait_base = field(default_factory=wait_none)

    @classmethod
    def exponential(
        cls, max_attempts: int, initial: float, maximum: float, base: float = 2.0
    ) -> RetryPolicy:
        """Waits ``initial``, ``initial*base``, ... capped at ``maximum``."""
        return cls(max_attempts, wait_exponential(multiplier=initial, exp_base=base, max=maximum))

    @classmethod
    def linear(cls, max_attempts: int, step: float, maximum: float | None = None) -> RetryPolicy:
        """Waits ``step``, ``2*step``, ``3*step``, ..."""
        if maximum is None:
            return cls(max_attempts, wait_incrementing(start=step, increment=step))
        return cls(max_attempts, wait_incrementing(start=step, increment=step, max=maximum))


@dataclass(frozen=True)
class Verifier(Generic[T]):
    """Predicate that must observe the written value before the write counts."""

    name: str
    check: Callable[[T], Awaitable[bool]]
    policy: RetryPolicy
    settle_seconds: float = 0.0


class RetryingWriter(Generic[T]):
    """Run ``write`` then every verifier, retrying the lot on transient failure.

    Only :class:`TransientError` is retried. Anything else (validation, auth)
    propagates immediately. When the budget is spent a
    :class:`VerificationTimeoutError` is raised.

    Example:
        >>> writer = RetryingWriter(RetryPolicy.exponential(3, 1.0, 5.0), [verifier])
        >>> note = await writer.run(lambda: store.create(note))
    """

    def __init__(
        self,
        policy: RetryPolicy,
        verifiers: Sequence[Verifier[T]] = (),
        *,
        sleep: Sleep = asyncio.sleep,
        label: str = "write",
    ):
        self.policy = policy
        self.verifiers = list(verifiers)
        self.label = label
        self._sleep = sleep

    async def run(self, write: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self.policy.wait,
            retry=retry_if_exception_type(TransientError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return await retrying(self._attempt, write)
        except TransientError as e:
            raise VerificationTimeoutError(
                f"{self.label} not confirmed after {self.policy.max_attempts} attempt(s): {e}",
                attempts=self.policy.max_attempts,
                original_error=e,
            ) from e

    async def _attempt(self, write: Callable[[], Awaitable[T]]) -> T:
        result = await write()
        for verifier in self.verifiers:
            if not await self._confirm(verifier, result):
                raise UnconfirmedWriteError(
                    f"{verifier.name} could not observe {self.label} after "
                    f"{verifier.policy.max_attempts} check(s)"
                )
        return result

    async def _confirm(self, verifier: Verifier[T], result: T) -> bool:
        if verifier.settle_seconds > 0:
            await self._sleep(verifier.settle_seconds)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(verifier.policy.max_attempts),
            wait=verifier.policy.wait,
            retry=retry_if_result(lambda ok: ok is not True)
            | retry_if_exception_type(TransientError),
            sleep=self._sleep,
        )
        try:
            return await retrying(verifier.check, result)
        except RetryError:
            logger.warning(f"{self.label}: {verifier.name} gave up")
            return False

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"{self.label} attempt {retry_state.attempt_number}/{self.policy.max_attempts} "
            f"failed ({exc}); retrying in {wait:.1f}s"
        )
