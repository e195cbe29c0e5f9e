"""Job orchestration primitives."""

from .queue import PageQueue, PageRef
from .service import JobCancelled, Orchestrator
from .store import JobStore

__all__ = [
    "JobCancelled",
    "JobStore",
    "Orchestrator",
    "PageQueue",
    "PageRef",
]
