"""Tests for image path resolution and healing."""

import pytest

from synth_collect.errors import ImageFileNotFoundError, StorageError
from synth_collect.services.paths import (
    PathResolver,
    absolute_to_stored,
    canonical_path,
    canonical_stored_path,
)
from tests.conftest import add_image, png_bytes, session_folder


def test_stored_path_is_primary(store, session) -> None:
    image = add_image(store, session, "a.png")
    resolver = PathResolver(store.data_root, store)

    resolved = resolver.resolve(image)

    assert resolved.source == "stored"
    assert resolved.primary
    assert resolved.path == canonical_path(store.data_root, session.id, "a.png")


def test_legacy_absolute_path_is_found_and_healed(store, session) -> None:
    image = add_image(
        store,
        session,
        "a.png",
        file_path="/old/host/data/sessions/x/images/a.png",
    )
    resolver = PathResolver(store.data_root, store)

    resolved = resolver.resolve(image)

    assert resolved.source == "canonical"
    healed = store.get_image(image.id)
    assert healed is not None
    assert healed.file_path == canonical_stored_path(session.id, "a.png")


def test_session_folder_fallback(store, session) -> None:
    image = add_image(store, session, "a.png", write_file=False)
    legacy = session_folder(store.data_root, session.id) / "a.png"
    legacy.write_bytes(png_bytes())
    resolver = PathResolver(store.data_root, store)

    resolved = resolver.resolve(image)

    assert resolved.source == "session_folder"
    assert store.get_image(image.id).file_path == f"sessions/{session.id}/a.png"


def test_data_prefixed_relative_path(store, session) -> None:
    image = add_image(
        store, session, "a.png", file_path="data/uploads/a.png", write_file=False
    )
    target = store.data_root / "uploads" / "a.png"
    target.parent.mkdir(parents=True)
    target.write_bytes(png_bytes())

    resolved = PathResolver(store.data_root, store).resolve(image, heal=False)

    assert resolved.source == "data_root_relative"
    assert store.get_image(image.id).file_path == "data/uploads/a.png"


def test_data_root_filename_fallback(store, session) -> None:
    image = add_image(store, session, "loose.png", write_file=False)
    (store.data_root / "loose.png").write_bytes(png_bytes())

    resolved = PathResolver(store.data_root, store).resolve(image)

    assert resolved.source == "data_root_filename"
    assert store.get_image(image.id).file_path == "loose.png"


def test_missing_file_lists_every_attempt(store, session) -> None:
    image = add_image(store, session, "gone.png", write_file=False)
    resolver = PathResolver(store.data_root, store)

    with pytest.raises(ImageFileNotFoundError) as excinfo:
        resolver.resolve(image)

    attempted = excinfo.value.attempted
    assert attempted[0] == canonical_path(store.data_root, session.id, "gone.png")
    assert store.data_root / "gone.png" in attempted
    assert "Searched locations" in str(excinfo.value)


def test_heal_failure_is_not_raised(store, session) -> None:
    class ReadOnlyStore:
        def update_image(self, image_id, changes):  # type: ignore[no-untyped-def]
            raise StorageError("read only")

    image = add_image(store, session, "a.png", file_path="elsewhere/a.png")
    resolver = PathResolver(store.data_root, ReadOnlyStore())  # type: ignore[arg-type]

    resolved = resolver.resolve(image)

    assert resolved.source == "canonical"
    assert resolver.heal(image, resolved.path) is False
    assert store.get_image(image.id).file_path == "elsewhere/a.png"


def test_absolute_to_stored_keeps_outside_paths(tmp_path) -> None:
    data_root = tmp_path / "data"
    outside = tmp_path / "other" / "a.png"

    assert absolute_to_stored(data_root, data_root / "sessions" / "a.png") == (
        "sessions/a.png"
    )
    assert absolute_to_stored(data_root, outside) == str(outside)
