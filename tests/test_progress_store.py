"""Tests for the in-memory export progress store."""

from synth_collect.services.progress import InMemoryProgressStore, progress_key
from tests.conftest import FakeClock


def test_progress_key_combines_session_and_user() -> None:
    assert progress_key("abc", "user-1") == "abc-user-1"


def test_update_creates_entry_on_first_use() -> None:
    store = InMemoryProgressStore(clock=FakeClock())

    progress = store.update("k", session_id="s1", status="processing", percentage=10)

    assert progress is not None
    assert progress.session_id == "s1"
    assert store.get("k") == progress


def test_status_and_percentage_never_regress() -> None:
    store = InMemoryProgressStore(clock=FakeClock())
    store.start("k", "s1", status="processing", percentage=40)

    progress = store.update("k", status="validating", percentage=20, message="late")

    assert progress is not None
    assert progress.status == "processing"
    assert progress.percentage == 40
    assert progress.message == "late"


def test_terminal_entry_is_frozen_until_restarted() -> None:
    store = InMemoryProgressStore(clock=FakeClock())
    store.start("k", "s1")
    store.update("k", status="complete", percentage=100)

    store.update("k", status="processing", percentage=5)
    assert store.get("k").status == "complete"  # type: ignore[union-attr]

    restarted = store.start("k", "s1", status="validating")
    assert restarted.status == "validating"
    assert restarted.percentage == 0


def test_wire_format_uses_camel_case() -> None:
    store = InMemoryProgressStore(clock=FakeClock(5.0))
    progress = store.start("k", "s1", total_images=3)

    wire = progress.to_wire()

    assert wire["sessionId"] == "s1"
    assert wire["totalImages"] == 3
    assert wire["startTime"] == 5.0
    assert "processed_images" not in wire


def test_sweep_drops_finished_and_stale_entries() -> None:
    clock = FakeClock()
    store = InMemoryProgressStore(clock=clock)
    store.start("old", "s1")
    clock.advance(100)
    store.start("done", "s2")
    store.update("done", status="error", error="boom")
    store.start("running", "s3", status="processing")
    clock.advance(10)

    removed = store.sweep(max_age_seconds=60, grace_seconds=5)

    assert removed == 2
    assert store.get("old") is None
    assert store.get("done") is None
    assert store.get("running") is not None


def test_delete_is_idempotent() -> None:
    store = InMemoryProgressStore()
    store.delete("missing")
    store.start("k", "s1")
    store.delete("k")
    assert store.get("k") is None
