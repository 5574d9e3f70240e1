"""Tests for the JSON-file collection store."""

import json
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from synth_collect.adapters.json_storage import JsonFileStorage
from synth_collect.domain.sessions import ExportRecord
from synth_collect.errors import StorageError
from synth_collect.services.paths import canonical_path
from tests.conftest import USER_ID, add_image, session_folder


def test_session_layout_on_disk(store, session) -> None:
    folder = session_folder(store.data_root, session.id)

    config = json.loads((folder / "session_config.json").read_text())
    metadata = json.loads((folder / "metadata.json").read_text())

    assert config["name"] == "Cats"
    assert config["created_by"] == USER_ID
    assert metadata == {"images": {}}


def test_image_count_tracks_records(store, session) -> None:
    first = add_image(store, session, "a.png")
    add_image(store, session, "b.png")
    assert store.get_session(session.id).image_count == 2

    store.delete_image(first.id)

    assert store.get_session(session.id).image_count == 1
    assert [image.filename for image in store.list_images(session.id)] == ["b.png"]
    assert not canonical_path(store.data_root, session.id, "a.png").exists()


def test_image_mapping_resolves_images(store, session) -> None:
    image = add_image(store, session, "a.png")

    mapping = json.loads((store.data_root / "image-mapping.json").read_text())

    assert mapping == {str(image.id): str(session.id)}
    assert store.get_image(image.id) == image


def test_get_image_falls_back_to_scanning_sessions(store, session) -> None:
    image = add_image(store, session, "a.png")
    (store.data_root / "image-mapping.json").unlink()

    assert store.get_image(image.id) == image


def test_update_image_keeps_identity(store, session) -> None:
    image = add_image(store, session, "a.png")

    updated = store.update_image(
        image.id, {"prompt": "new", "id": uuid4(), "tags": ["x"]}
    )

    assert updated.id == image.id
    assert updated.prompt == "new"
    assert store.get_image(image.id).tags == ["x"]


def test_update_missing_image_raises(store) -> None:
    with pytest.raises(StorageError):
        store.update_image(uuid4(), {"prompt": "x"})


def test_list_sessions_filters_by_owner(store, session) -> None:
    store.create_session(name="Dogs", created_by="someone-else")

    assert [item.name for item in store.list_sessions(USER_ID)] == ["Cats"]
    assert len(store.list_sessions()) == 2


def test_delete_session_cascades(store, session) -> None:
    image = add_image(store, session, "a.png")

    store.delete_session(session.id)

    assert store.get_session(session.id) is None
    assert store.get_image(image.id) is None
    assert not session_folder(store.data_root, session.id).exists()


def test_corrupt_file_raises_storage_error(store, session) -> None:
    config = session_folder(store.data_root, session.id) / "session_config.json"
    config.write_text("{broken")

    with pytest.raises(StorageError):
        store.get_session(session.id)


def test_export_history_round_trips(tmp_path) -> None:
    store = JsonFileStorage(tmp_path)
    session = store.create_session(name="Cats", created_by=USER_ID)
    record = ExportRecord(
        id=uuid4(),
        exported_at=datetime(2024, 1, 1, tzinfo=UTC),
        exported_by=USER_ID,
        format="zip",
        file_path="Cats_full_export.zip",
        image_count=3,
    )

    store.update_session(session.id, {"export_history": [record]})

    assert store.get_session(session.id).export_history == [record]
