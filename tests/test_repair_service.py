"""Tests for the bulk path repair."""

from synth_collect.services.paths import canonical_path, canonical_stored_path
from tests.conftest import add_image, png_bytes, session_folder


def _legacy_image(store, session, filename: str):
    """Create a record whose file only exists in the old flat layout."""
    image = add_image(
        store,
        session,
        filename,
        file_path=f"/srv/old/data/sessions/{session.id}/{filename}",
        write_file=False,
    )
    (session_folder(store.data_root, session.id) / filename).write_bytes(png_bytes())
    return image


def test_repair_copies_and_repoints(container, store, session) -> None:
    healthy = add_image(store, session, "ok.png")
    legacy = _legacy_image(store, session, "legacy.png")
    repointed = add_image(store, session, "moved.png", file_path="elsewhere.png")
    add_image(store, session, "gone.png", write_file=False)

    report = container.repair_service.repair()

    assert report.sessions == 1
    assert report.images == 4
    assert report.unchanged == 1
    assert report.copied == [f"{session.id}/legacy.png"]
    assert report.repointed == [f"{session.id}/moved.png"]
    assert report.missing == [f"{session.id}/gone.png"]
    assert report.failed == []
    assert canonical_path(store.data_root, session.id, "legacy.png").is_file()
    assert (session_folder(store.data_root, session.id) / "legacy.png").is_file()
    for image in (healthy, legacy, repointed):
        stored = store.get_image(image.id).file_path
        assert stored == canonical_stored_path(session.id, image.filename)


def test_repair_is_idempotent(container, store, session) -> None:
    _legacy_image(store, session, "legacy.png")
    container.repair_service.repair()

    second = container.repair_service.repair()

    assert second.changed == 0
    assert second.unchanged == 1


def test_dry_run_changes_nothing(container, store, session) -> None:
    legacy = _legacy_image(store, session, "legacy.png")

    report = container.repair_service.repair(dry_run=True)

    assert report.copied == [f"{session.id}/legacy.png"]
    assert report.summary().startswith("Would repair 1 of 1 images")
    assert not canonical_path(store.data_root, session.id, "legacy.png").exists()
    assert store.get_image(legacy.id).file_path == legacy.file_path
