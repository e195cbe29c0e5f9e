"""
Entity Cache
Bounded LRU map of resolved entities with deduplicated, rate-limited fetches.
"""
from collections import OrderedDict
from threading import Lock
from typing import Dict, Iterable, List, Optional
import asyncio
import logging

from core import AttemptOutcome, Entity, RetryPolicy
from sources.wikibase import EntityFetcher, chunked
from utils.exceptions import ResolutionError, ResolutionErrorKind, TransportError


logger = logging.getLogger(__name__)


class EntityCache:
    """
    Entity cache shared by every job.

    - at most ``capacity`` entries; the least recently accessed is evicted
      after an insert pushes the size over the bound
    - at most one in-flight fetch per id; concurrent callers share its result
    - fetches run under the entity limiter, independent of the query limiter
    """

    def __init__(
        self,
        fetcher: EntityFetcher,
        *,
        capacity: int,
        slots: asyncio.Semaphore,
        policy: Optional[RetryPolicy] = None,
        batch_size: int = 50,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.batch_size = batch_size
        self._fetcher = fetcher
        self._slots = slots
        self._policy = policy or RetryPolicy(max_attempts=1)
        self._entries: "OrderedDict[str, Entity]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Future] = {}
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "fetches": 0, "evictions": 0}

    @property
    def fetcher(self) -> EntityFetcher:
        return self._fetcher

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._entries

    def keys(self) -> List[str]:
        """Ids from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats, size=len(self._entries), capacity=self.capacity)

    def get(self, entity_id: str) -> Optional[Entity]:
        """Cached entity (marked most recently used), or None."""
        with self._lock:
            entity = self._entries.get(entity_id)
            if entity is not None:
                self._entries.move_to_end(entity_id)
            return entity

    def put(self, entity: Entity) -> None:
        """Insert or replace an entry, then evict down to capacity."""
        with self._lock:
            self._insert(entity.id, entity)

    def _insert(self, key: str, entity: Entity) -> None:
        self._entries[key] = entity
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self._stats["evictions"] += 1
            logger.debug(f"[EntityCache] evicted {evicted}")

    async def resolve(self, entity_id: str) -> Entity:
        """
        Resolve one entity.

        Raises:
            ResolutionError: NOT_FOUND when the entity does not exist,
                TRANSPORT when the fetch failed after retries
        """
        found = await self.resolve_many([entity_id])
        entity = found.get(entity_id)
        if entity is None:
            raise ResolutionError(
                f"Entity {entity_id} not found",
                entity_id=entity_id,
                kind=ResolutionErrorKind.NOT_FOUND,
            )
        return entity

    async def resolve_many(self, entity_ids: Iterable[str]) -> Dict[str, Entity]:
        """
        Resolve many entities; ids that do not exist are omitted.

        Raises:
            ResolutionError(TRANSPORT): any batch failed after retries
        """
        wanted = list(dict.fromkeys(i for i in entity_ids if i))
        found: Dict[str, Entity] = {}
        waiting: Dict[str, asyncio.Future] = {}
        to_fetch: List[str] = []
        loop = asyncio.get_running_loop()

        with self._lock:
            for entity_id in wanted:
                entity = self._entries.get(entity_id)
                if entity is not None:
                    self._entries.move_to_end(entity_id)
                    self._stats["hits"] += 1
                    found[entity_id] = entity
                    continue
                self._stats["misses"] += 1
                future = self._inflight.get(entity_id)
                if future is None:
                    future = loop.create_future()
                    self._inflight[entity_id] = future
                    to_fetch.append(entity_id)
                waiting[entity_id] = future

        if to_fetch:
            batches = chunked(to_fetch, self.batch_size)
            await asyncio.gather(*(self._fetch_batch(batch) for batch in batches))

        error: Optional[BaseException] = None
        for entity_id, future in waiting.items():
            try:
                entity = await asyncio.shield(future)
            except ResolutionError as e:
                error = error or e
                continue
            if entity is not None:
                found[entity_id] = entity

        if error is not None:
            raise error
        return found

    async def _fetch_batch(self, batch: List[str]) -> None:
        async def _attempt(attempt: int) -> AttemptOutcome[Dict[str, Entity]]:
            async with self._slots:
                with self._lock:
                    self._stats["fetches"] += 1
                try:
                    return AttemptOutcome.ok(await self._fetcher.fetch(batch))
                except TransportError as e:
                    logger.warning(f"[EntityCache] fetch attempt {attempt} for {len(batch)} ids failed: {e}")
                    return AttemptOutcome.retryable(e)

        try:
            outcome, attempts = await self._policy.run(_attempt)
        except BaseException as e:
            self._settle(batch, None, e)
            raise

        if outcome.succeeded:
            self._settle(batch, outcome.value, None)
        else:
            self._settle(
                batch,
                None,
                ResolutionError(
                    f"Fetching {len(batch)} entities failed after {attempts} attempt(s): {outcome.error}",
                    entity_id=batch[0],
                    kind=ResolutionErrorKind.TRANSPORT,
                ),
            )

    def _settle(self, batch: List[str], fetched: Optional[Dict[str, Entity]], error: Optional[BaseException]) -> None:
        with self._lock:
            for entity_id in batch:
                future = self._inflight.pop(entity_id, None)
                if future is None or future.done():
                    continue
                if fetched is not None:
                    entity = fetched.get(entity_id)
                    if entity is not None:
                        # redirects stay under the requested id
                        self._insert(entity_id, entity)
                    future.set_result(entity)
                elif isinstance(error, Exception):
                    future.set_exception(error)
                else:
                    future.cancel()
