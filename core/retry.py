"""Retry loop with an explicit per-attempt result type."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, Tuple, TypeVar

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential, wait_fixed, wait_none


T = TypeVar("T")


class AttemptStatus(str, Enum):
    OK = "ok"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    """Result of one attempt: a value, or an error that may be retried."""

    status: AttemptStatus
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: T) -> "AttemptOutcome[T]":
        return cls(status=AttemptStatus.OK, value=value)

    @classmethod
    def retryable(cls, error: BaseException, value: Optional[T] = None) -> "AttemptOutcome[T]":
        return cls(status=AttemptStatus.RETRYABLE, value=value, error=error)

    @classmethod
    def fatal(cls, error: BaseException, value: Optional[T] = None) -> "AttemptOutcome[T]":
        return cls(status=AttemptStatus.FATAL, value=value, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.OK


class RetryPolicy:
    """Bounded sequential attempts with a configurable backoff curve.

    ``max_attempts`` counts the first attempt. Attempts never overlap.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff: str = "exponential",
        delay_sec: float = 1.0,
        max_delay_sec: float = 30.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = int(max_attempts)
        self.backoff = backoff
        self.delay_sec = float(delay_sec)
        self.max_delay_sec = float(max_delay_sec)
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, settings, sleep: Optional[Callable[[float], Awaitable[None]]] = None) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            backoff=settings.backoff,
            delay_sec=settings.delay_sec,
            max_delay_sec=settings.max_delay_sec,
            sleep=sleep,
        )

    def _wait(self):
        if self.backoff == "none" or self.delay_sec <= 0:
            return wait_none()
        if self.backoff == "fixed":
            return wait_fixed(min(self.delay_sec, self.max_delay_sec))
        return wait_exponential(multiplier=self.delay_sec, min=self.delay_sec, max=self.max_delay_sec)

    async def run(self, attempt_fn: Callable[[int], Awaitable[AttemptOutcome[T]]]) -> Tuple[AttemptOutcome[T], int]:
        """Call ``attempt_fn(attempt_number)`` until OK, FATAL or the cap.

        Returns the last outcome and the number of attempts made.
        Exceptions raised by ``attempt_fn`` propagate unchanged.
        """
        counter = {"attempts": 0}

        async def _attempt() -> AttemptOutcome[T]:
            counter["attempts"] += 1
            return await attempt_fn(counter["attempts"])

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_result(lambda outcome: outcome.status == AttemptStatus.RETRYABLE),
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=self._sleep,
        )
        outcome = await retrying(_attempt)
        return outcome, counter["attempts"]
