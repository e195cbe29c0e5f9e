"""Paced, retried page writes."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from core import AttemptOutcome, EditOutcome, EditOutcomeKind, PacingGate, RetryPolicy
from utils.exceptions import TransportError


logger = logging.getLogger(__name__)


class PageWriter(Protocol):
    async def edit(
        self,
        title: str,
        text: str,
        *,
        summary: str,
        base_revision: Optional[int] = None,
    ) -> EditOutcome:
        ...


class Editor:
    """Writes pages through the shared pacing gate.

    TRANSPORT outcomes are retried under the retry policy; CONFLICT and
    AUTH_FAILURE are returned at once.
    """

    def __init__(
        self,
        writer: PageWriter,
        *,
        gate: PacingGate,
        policy: RetryPolicy,
        summary: str = "Wikidata list updated",
        dry_run: bool = False,
    ) -> None:
        self._writer = writer
        self._gate = gate
        self._policy = policy
        self.summary = summary
        self.dry_run = dry_run

    async def _attempt(self, page: str, new_text: str, base_revision: Optional[int], attempt: int) -> AttemptOutcome[EditOutcome]:
        async with self._gate.slot() as ticket:
            outcome = await self._writer.edit(page, new_text, summary=self.summary, base_revision=base_revision)
            if outcome.applied:
                ticket.succeeded()

        if outcome.applied:
            return AttemptOutcome.ok(outcome)
        if outcome.kind == EditOutcomeKind.TRANSPORT:
            logger.warning(f"[Editor] {page}: attempt {attempt} failed: {outcome.message}")
            return AttemptOutcome.retryable(TransportError(outcome.message, source="mediawiki"), value=outcome)
        return AttemptOutcome.fatal(TransportError(outcome.message, source="mediawiki"), value=outcome)

    async def apply(self, page: str, new_text: str, base_revision: Optional[int] = None) -> EditOutcome:
        if self.dry_run:
            logger.info(f"[Editor] dry run, not saving {page} ({len(new_text)} chars)")
            return EditOutcome(kind=EditOutcomeKind.APPLIED, attempts=0, message="dry run")

        result, attempts = await self._policy.run(lambda n: self._attempt(page, new_text, base_revision, n))
        outcome = result.value.model_copy(update={"attempts": attempts})
        if outcome.applied:
            logger.info(f"[Editor] saved {page} (rev {outcome.revision})")
        return outcome
