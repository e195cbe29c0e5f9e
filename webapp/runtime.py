"""Shared runtime singletons for the status API and CLI entrypoints."""

from __future__ import annotations

from typing import Optional

from config import Settings, get_settings
from orchestrator.service import Orchestrator
from orchestrator.store import JobStore


_STORE = JobStore()
_ORCHESTRATOR: Optional[Orchestrator] = None


def get_store() -> JobStore:
    return _STORE


def get_orchestrator(settings: Optional[Settings] = None) -> Orchestrator:
    """Build the orchestrator on first use; it reports into the shared store."""
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = Orchestrator.from_settings(settings or get_settings(), store=_STORE)
    return _ORCHESTRATOR
