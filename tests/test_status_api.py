from __future__ import annotations

import importlib

from fastapi.testclient import TestClient

from core import RunMode, RunSummary
from orchestrator import JobStore
from utils.exceptions import ConflictError

status_module = importlib.import_module("webapp.status_app")


def _client(monkeypatch) -> tuple:
    store = JobStore()
    monkeypatch.setattr(status_module, "get_store", lambda: store)
    return TestClient(status_module.app), store


def test_health(monkeypatch) -> None:
    client, _ = _client(monkeypatch)
    payload = client.get("/api/v1/health").json()
    assert payload["ok"] is True


def test_jobs_listing_and_filter(monkeypatch) -> None:
    client, store = _client(monkeypatch)
    store.create("List A")
    store.mark_done("List A", edited=True)
    store.create("List B")
    store.mark_failed("List B", ConflictError("Edit conflict", page="List B"))

    everything = client.get("/api/v1/jobs").json()
    failed = client.get("/api/v1/jobs", params={"state": "failed"}).json()

    assert everything["count"] == 2
    assert [job["page"] for job in everything["jobs"]] == ["List A", "List B"]
    assert failed["count"] == 1
    assert failed["jobs"][0]["error_type"] == "ConflictError"


def test_single_job_with_events_and_slash_in_title(monkeypatch) -> None:
    client, store = _client(monkeypatch)
    store.create("Lists/People")
    store.mark_done("Lists/People", edited=False)

    payload = client.get("/api/v1/jobs/Lists/People").json()

    assert payload["job"]["state"] == "done"
    assert payload["finished"] is True
    assert [event["event"] for event in payload["events"]] == ["queued", "done"]
    assert client.get("/api/v1/jobs/Unknown").status_code == 404


def test_summary_404_until_a_cycle_finished(monkeypatch) -> None:
    client, store = _client(monkeypatch)
    assert client.get("/api/v1/summary").status_code == 404

    store.set_last_summary(RunSummary(mode=RunMode.CONTINUOUS, cycle=3, skipped=["User:X"]))
    payload = client.get("/api/v1/summary").json()

    assert payload["cycle"] == 3
    assert payload["brief"]["skipped"] == 1
