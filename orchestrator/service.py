"""Orchestrator: runs page jobs through the pipeline under global resource caps."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from config.settings import Settings
from core import (
    EditOutcome,
    EditOutcomeKind,
    Entity,
    Job,
    JobReport,
    JobState,
    PageSnapshot,
    QueryResult,
    ResourceLimits,
    RetryPolicy,
    RunMode,
    RunSummary,
    TemplateMarkers,
)
from pipeline.differ import diff
from pipeline.editor import Editor
from pipeline.page_parser import build_job
from render.entities import needs_row_entities, referenced_entity_ids, row_entity_ids
from render.wikitext import Renderer
from sources.mediawiki import MediaWikiClient
from sources.sparql import HttpSparqlTransport, QueryExecutor
from sources.wikibase import WikibaseEntityFetcher
from storage.entity_cache import EntityCache
from utils.exceptions import AuthFailure, ConflictError, ListSyncError, TransportError
from .queue import PageQueue, PageRef
from .store import JobStore


logger = logging.getLogger(__name__)


class WikiReader(Protocol):
    async def load_page(self, title: str) -> PageSnapshot: ...

    async def page_namespaces(self, titles: List[str]) -> Dict[str, int]: ...

    async def list_transcluding_pages(self, template: str) -> List[Tuple[str, int]]: ...


class JobCancelled(Exception):
    """Raised between stages once a stop was requested."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """Processes the page set once per cycle with at most ``max_workers`` jobs in flight."""

    def __init__(
        self,
        *,
        wiki: WikiReader,
        executor: QueryExecutor,
        cache: EntityCache,
        renderer: Renderer,
        editor: Editor,
        markers: TemplateMarkers,
        max_workers: int = 4,
        cycle_interval_sec: float = 300.0,
        excluded_namespaces=None,
        pages: Optional[Iterable[str]] = None,
        default_language: str = "en",
        store: Optional[JobStore] = None,
        queue: Optional[PageQueue] = None,
    ) -> None:
        self._wiki = wiki
        self._executor = executor
        self._cache = cache
        self._renderer = renderer
        self._editor = editor
        self.markers = markers
        self.max_workers = max(1, int(max_workers))
        self.cycle_interval_sec = cycle_interval_sec
        self.excluded_namespaces = excluded_namespaces if excluded_namespaces is not None else []
        self.pages = list(pages or [])
        self.default_language = default_language
        self._store = store or JobStore()
        self._queue = queue or PageQueue()
        self._cycle = 0
        self._closeables: List[object] = []

    @classmethod
    def from_settings(cls, settings: Settings, *, store: Optional[JobStore] = None) -> "Orchestrator":
        """Wire every component to one shared set of limiters."""
        limits = ResourceLimits.from_settings(settings)
        policy = RetryPolicy.from_settings(settings.retry)
        wiki = MediaWikiClient(
            settings.wiki.api_url,
            oauth2_token=settings.wiki.oauth2_token,
            user_agent=settings.wiki.user_agent,
            timeout_sec=settings.wiki.timeout_sec,
        )
        executor = QueryExecutor(
            HttpSparqlTransport(settings.query.endpoint, user_agent=settings.query.user_agent),
            slots=limits.query_slots,
            policy=policy,
            timeout_sec=settings.query.timeout_sec,
            prefix=settings.query.prefix,
        )
        cache = EntityCache(
            WikibaseEntityFetcher(
                settings.entities.api_url,
                timeout_sec=settings.entities.timeout_sec,
                user_agent=settings.query.user_agent,
            ),
            capacity=settings.entities.cache_capacity,
            slots=limits.entity_slots,
            policy=policy,
            batch_size=settings.entities.batch_size,
        )
        editor = Editor(
            wiki,
            gate=limits.edit_gate,
            policy=policy,
            summary=settings.wiki.edit_summary,
            dry_run=settings.wiki.dry_run,
        )
        orchestrator = cls(
            wiki=wiki,
            executor=executor,
            cache=cache,
            renderer=Renderer(settings.render, wiki_id=settings.wiki.wiki_id),
            editor=editor,
            markers=TemplateMarkers(start=settings.template.start_marker, end=settings.template.end_marker),
            max_workers=settings.orchestrator.max_workers,
            cycle_interval_sec=settings.orchestrator.cycle_interval_sec,
            excluded_namespaces=settings.wiki.excluded_namespaces,
            pages=settings.wiki.pages,
            default_language=settings.render.default_language,
            store=store,
        )
        orchestrator._closeables = [wiki, executor.transport, cache.fetcher]
        return orchestrator

    @property
    def store(self) -> JobStore:
        return self._store

    async def close(self) -> None:
        """Close the HTTP sessions opened by ``from_settings``."""
        for resource in self._closeables:
            close = getattr(resource, "close", None)
            if close is not None:
                await close()
        self._closeables = []

    def is_excluded(self, namespace: int) -> bool:
        if namespace < 0:
            return True
        if self.excluded_namespaces == "*":
            return True
        return namespace in self.excluded_namespaces

    async def discover_pages(self) -> List[PageRef]:
        """Configured pages, or every page embedding the start template."""
        if self.pages:
            namespaces = await self._wiki.page_namespaces(self.pages)
            return [PageRef(title=title, namespace=namespaces.get(title, 0)) for title in self.pages]
        found = await self._wiki.list_transcluding_pages(self.markers.start)
        return [PageRef(title=title, namespace=ns) for title, ns in found]

    # cycles

    async def run(self, mode: RunMode, stop_event: Optional[asyncio.Event] = None) -> RunSummary:
        """Dispatch on the explicit run mode; returns the last cycle's summary."""
        if mode == RunMode.ONCE:
            return await self.run_once(stop_event=stop_event)
        return await self.run_continuous(stop_event or asyncio.Event())

    async def run_once(
        self,
        pages: Optional[List[PageRef]] = None,
        *,
        stop_event: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        return await self.run_cycle(RunMode.ONCE, pages=pages, stop_event=stop_event)

    async def run_continuous(
        self,
        stop_event: asyncio.Event,
        *,
        interval_sec: Optional[float] = None,
        max_cycles: Optional[int] = None,
    ) -> RunSummary:
        """Repeat cycles until ``stop_event`` is set (or ``max_cycles`` ran)."""
        interval = self.cycle_interval_sec if interval_sec is None else interval_sec
        summary = RunSummary(mode=RunMode.CONTINUOUS, cycle=self._cycle)
        cycles = 0
        while not stop_event.is_set():
            try:
                summary = await self.run_cycle(RunMode.CONTINUOUS, stop_event=stop_event)
            except ListSyncError as e:
                logger.error(f"[Orchestrator] cycle failed before processing pages: {e}")
            except Exception:
                logger.exception("[Orchestrator] cycle failed with an unexpected error")
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        return summary

    async def run_cycle(
        self,
        mode: RunMode,
        *,
        pages: Optional[List[PageRef]] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        self._cycle += 1
        summary = RunSummary(mode=mode, cycle=self._cycle)
        if pages is None:
            pages = await self.discover_pages()

        for page in pages:
            if self.is_excluded(page.namespace):
                logger.info(f"[Orchestrator] skipping {page.title} (namespace {page.namespace})")
                summary.skipped.append(page.title)
                continue
            if self._queue.enqueue(page):
                self._store.create(page.title)

        workers = min(self.max_workers, self._queue.size())
        await asyncio.gather(*(self._worker(summary, stop_event) for _ in range(workers)))

        for page in self._queue.drain():
            self._store.mark_cancelled(page.title)
            summary.reports.append(self._store.get(page.title))

        summary.finished_at = _utcnow()
        self._store.set_last_summary(summary)
        logger.info(f"[Orchestrator] cycle {summary.cycle} ({mode.value}): {summary.brief()} cache={self._cache.stats()}")
        return summary

    async def _worker(self, summary: RunSummary, stop_event: Optional[asyncio.Event]) -> None:
        while not (stop_event is not None and stop_event.is_set()):
            page = self._queue.dequeue()
            if page is None:
                return
            summary.reports.append(await self.process_page(page, stop_event=stop_event))

    # one job

    def _enter(self, page: str, state: JobState, stop_event: Optional[asyncio.Event]) -> None:
        if stop_event is not None and stop_event.is_set():
            raise JobCancelled(page)
        self._store.set_state(page, state)

    async def process_page(self, page: PageRef, *, stop_event: Optional[asyncio.Event] = None) -> JobReport:
        """Run one page through every stage; failures stay inside this job."""
        title = page.title
        if self._store.get(title) is None:
            self._store.create(title)
        try:
            self._enter(title, JobState.LOADING, stop_event)
            snapshot = await self._wiki.load_page(title)
            job = build_job(snapshot, self.markers, default_language=self.default_language)

            self._enter(title, JobState.QUERYING, stop_event)
            result = await self._executor.execute(job.query)
            self._store.update(title, query_attempts=result.attempts)

            self._enter(title, JobState.RESOLVING_ENTITIES, stop_event)
            entities = await self.resolve_entities(job, result)

            self._enter(title, JobState.RENDERING, stop_event)
            table = self._renderer.render(job, result, entities)
            self._store.update(title, row_count=table.row_count, warnings=list(table.warnings))
            for warning in table.warnings:
                logger.warning(f"[Orchestrator] {title}: {warning}")

            self._enter(title, JobState.DIFFING, stop_event)
            decision = diff(snapshot.text, table.text, job.markers.start, job.markers.end)

            if not decision.changed:
                logger.info(f"[Orchestrator] {title}: unchanged")
                return self._store.mark_done(title, edited=False)

            self._enter(title, JobState.EDITING, stop_event)
            outcome = await self._editor.apply(title, decision.new_text, job.base_revision)
            self._raise_for_outcome(title, outcome)
            return self._store.mark_done(title, edited=True)

        except JobCancelled:
            logger.info(f"[Orchestrator] {title}: cancelled")
            return self._store.mark_cancelled(title)
        except ListSyncError as e:
            logger.error(f"[Orchestrator] {title}: {type(e).__name__}: {e}")
            return self._store.mark_failed(title, e)
        except Exception as e:
            logger.exception(f"[Orchestrator] {title}: unexpected error")
            return self._store.mark_failed(title, e)

    async def resolve_entities(self, job: Job, result: QueryResult) -> Dict[str, Entity]:
        """Two waves: row items and properties, then items their statements reference."""
        ids = row_entity_ids(job, result)
        if not ids and not needs_row_entities(job):
            return {}
        entities = await self._cache.resolve_many(ids)
        more = referenced_entity_ids(job, ids, entities)
        if more:
            entities.update(await self._cache.resolve_many(more))
        return entities

    @staticmethod
    def _raise_for_outcome(page: str, outcome: EditOutcome) -> None:
        if outcome.applied:
            return
        if outcome.kind == EditOutcomeKind.CONFLICT:
            raise ConflictError(f"Edit conflict: {outcome.message}", page=page, attempts=outcome.attempts)
        if outcome.kind == EditOutcomeKind.AUTH_FAILURE:
            raise AuthFailure(f"Edit rejected: {outcome.message}", page=page, attempts=outcome.attempts)
        raise TransportError(f"Edit failed after {outcome.attempts} attempt(s): {outcome.message}", source="mediawiki")
