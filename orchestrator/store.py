"""In-memory job store: latest status and event log per page."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional

from core import JobReport, JobState, RunSummary


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    """Thread-safe store of job reports, shared with the status app."""

    def __init__(self, max_events: int = 200) -> None:
        self._reports: Dict[str, JobReport] = {}
        self._events: Dict[str, List[Dict[str, str]]] = {}
        self._last_summary: Optional[RunSummary] = None
        self._max_events = max_events
        self._lock = Lock()

    def create(self, page: str) -> JobReport:
        """Start a fresh report for this cycle (replaces the previous one)."""
        with self._lock:
            report = JobReport(page=page, state=JobState.QUEUED)
            self._reports[page] = report
            self._events.setdefault(page, [])
            self._append(page, JobState.QUEUED.value, "")
            return report.model_copy(deep=True)

    def get(self, page: str) -> Optional[JobReport]:
        with self._lock:
            report = self._reports.get(page)
            return report.model_copy(deep=True) if report else None

    def list_reports(self) -> List[JobReport]:
        with self._lock:
            return [report.model_copy(deep=True) for _, report in sorted(self._reports.items())]

    def set_state(self, page: str, state: JobState, message: str = "") -> Optional[JobReport]:
        with self._lock:
            report = self._reports.get(page)
            if not report:
                return None
            report.state = state
            report.updated_at = _utcnow()
            self._append(page, state.value, message)
            return report.model_copy(deep=True)

    def update(self, page: str, **fields) -> Optional[JobReport]:
        with self._lock:
            report = self._reports.get(page)
            if not report:
                return None
            for key, value in fields.items():
                setattr(report, key, value)
            report.updated_at = _utcnow()
            return report.model_copy(deep=True)

    def mark_done(self, page: str, *, edited: bool) -> Optional[JobReport]:
        self.update(page, edited=edited)
        return self.set_state(page, JobState.DONE, "edited" if edited else "unchanged")

    def mark_failed(self, page: str, error: BaseException) -> Optional[JobReport]:
        self.update(page, error=str(error), error_type=type(error).__name__)
        return self.set_state(page, JobState.FAILED, str(error))

    def mark_cancelled(self, page: str) -> Optional[JobReport]:
        return self.set_state(page, JobState.CANCELLED, "stop requested")

    def list_events(self, page: str) -> List[Dict[str, str]]:
        with self._lock:
            return [dict(item) for item in self._events.get(page, [])]

    def set_last_summary(self, summary: RunSummary) -> None:
        with self._lock:
            self._last_summary = summary.model_copy(deep=True)

    def last_summary(self) -> Optional[RunSummary]:
        with self._lock:
            return self._last_summary.model_copy(deep=True) if self._last_summary else None

    def _append(self, page: str, event: str, message: str) -> None:
        events = self._events.setdefault(page, [])
        events.append(
            {
                "ts": _utcnow().isoformat(timespec="seconds"),
                "event": event,
                "message": str(message or "").strip(),
            }
        )
        if len(events) > self._max_events:
            del events[: len(events) - self._max_events]
