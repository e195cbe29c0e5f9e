"""Process-wide resource limiters shared by every job."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional


class PacingTicket:
    """Handed to the holder of the pacing gate; mark it when the write succeeded."""

    def __init__(self) -> None:
        self.success = False

    def succeeded(self) -> None:
        self.success = True


class PacingGate:
    """Keeps successive successful writes at least ``min_interval_sec`` apart.

    Writes are serialized; a failed write does not reset the interval.
    """

    def __init__(
        self,
        min_interval_sec: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.min_interval_sec = max(0.0, float(min_interval_sec))
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._last_success: Optional[float] = None

    @property
    def last_success(self) -> Optional[float]:
        return self._last_success

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[PacingTicket]:
        async with self._lock:
            if self._last_success is not None:
                remaining = self._last_success + self.min_interval_sec - self._clock()
                if remaining > 0:
                    await self._sleep(remaining)
            ticket = PacingTicket()
            try:
                yield ticket
            finally:
                if ticket.success:
                    self._last_success = self._clock()


@dataclass
class ResourceLimits:
    """Shared limiters, created once and injected into components."""

    query_slots: asyncio.Semaphore
    entity_slots: asyncio.Semaphore
    edit_gate: PacingGate

    @classmethod
    def create(cls, *, max_queries: int = 4, max_entity_fetches: int = 2, edit_delay_ms: int = 1000) -> "ResourceLimits":
        return cls(
            query_slots=asyncio.Semaphore(max(1, int(max_queries))),
            entity_slots=asyncio.Semaphore(max(1, int(max_entity_fetches))),
            edit_gate=PacingGate(edit_delay_ms / 1000.0),
        )

    @classmethod
    def from_settings(cls, settings) -> "ResourceLimits":
        return cls.create(
            max_queries=settings.query.max_simultaneous,
            max_entity_fetches=settings.entities.max_simultaneous,
            edit_delay_ms=settings.wiki.edit_delay_ms,
        )
