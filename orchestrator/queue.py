"""In-memory FIFO queue of pages with dedup by title."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Deque, Dict, List, Optional


@dataclass(frozen=True)
class PageRef:
    title: str
    namespace: int = 0


class PageQueue:
    """Pages waiting for a worker during one cycle."""

    def __init__(self) -> None:
        self._queue: Deque[PageRef] = deque()
        self._enqueued: Dict[str, PageRef] = {}
        self._lock = Lock()

    def enqueue(self, page: PageRef) -> bool:
        """Queue a page once per title. Returns True when newly enqueued."""
        with self._lock:
            if page.title in self._enqueued:
                return False
            self._queue.append(page)
            self._enqueued[page.title] = page
            return True

    def dequeue(self) -> Optional[PageRef]:
        """Pop the next page, or None when empty."""
        with self._lock:
            if not self._queue:
                return None
            page = self._queue.popleft()
            self._enqueued.pop(page.title, None)
            return page

    def drain(self) -> List[PageRef]:
        """Remove and return everything still queued."""
        with self._lock:
            pages = list(self._queue)
            self._queue.clear()
            self._enqueued.clear()
            return pages

    def size(self) -> int:
        with self._lock:
            return len(self._queue)
