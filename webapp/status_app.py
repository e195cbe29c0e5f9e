"""Read-only FastAPI app exposing job status for the running engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException

from core import TERMINAL_STATES, JobState
from webapp.runtime import get_store


app = FastAPI(title="ListSync status API")


@app.get("/api/v1/health")
def health() -> Dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}


@app.get("/api/v1/jobs")
def list_jobs(state: Optional[JobState] = None) -> Dict[str, Any]:
    reports = get_store().list_reports()
    if state is not None:
        reports = [report for report in reports if report.state == state]
    return {"jobs": [report.model_dump(mode="json") for report in reports], "count": len(reports)}


@app.get("/api/v1/jobs/{page:path}")
def get_job(page: str) -> Dict[str, Any]:
    store = get_store()
    report = store.get(page)
    if report is None:
        raise HTTPException(status_code=404, detail="job not found")
    return {
        "job": report.model_dump(mode="json"),
        "finished": report.state in TERMINAL_STATES,
        "events": store.list_events(page),
    }


@app.get("/api/v1/summary")
def last_summary() -> Dict[str, Any]:
    summary = get_store().last_summary()
    if summary is None:
        raise HTTPException(status_code=404, detail="no cycle has finished yet")
    payload = summary.model_dump(mode="json")
    payload["brief"] = summary.brief()
    return payload
