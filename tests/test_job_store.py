from __future__ import annotations

from core import JobState
from orchestrator import JobStore, PageQueue, PageRef
from utils.exceptions import MarkersNotFound


def test_queue_dedups_by_title_and_drains() -> None:
    queue = PageQueue()

    assert queue.enqueue(PageRef("List A")) is True
    assert queue.enqueue(PageRef("List A", namespace=4)) is False
    assert queue.enqueue(PageRef("List B")) is True
    assert queue.size() == 2

    assert queue.dequeue() == PageRef("List A")
    assert queue.drain() == [PageRef("List B")]
    assert queue.dequeue() is None


def test_store_tracks_latest_state_and_errors() -> None:
    store = JobStore()
    store.create("List A")
    store.set_state("List A", JobState.QUERYING)
    store.update("List A", query_attempts=2)
    report = store.mark_failed("List A", MarkersNotFound("No {{Wikidata list}} on page", page="List A"))

    assert report.state == JobState.FAILED
    assert report.error_type == "MarkersNotFound"
    assert report.query_attempts == 2
    assert store.set_state("Unknown", JobState.DONE) is None


def test_store_returns_copies() -> None:
    store = JobStore()
    store.create("List A")

    report = store.get("List A")
    report.state = JobState.DONE

    assert store.get("List A").state == JobState.QUEUED


def test_event_log_is_capped() -> None:
    store = JobStore(max_events=3)
    store.create("List A")
    for state in (JobState.LOADING, JobState.QUERYING, JobState.RENDERING, JobState.DIFFING):
        store.set_state("List A", state)

    assert [event["event"] for event in store.list_events("List A")] == ["querying", "rendering", "diffing"]
