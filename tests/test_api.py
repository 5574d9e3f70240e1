"""Tests for the HTTP API."""

import io
import json
import zipfile
from uuid import UUID

from fastapi.testclient import TestClient

from synth_collect.api.app import create_app
from synth_collect.services.progress import progress_key
from tests.conftest import OTHER_USER_ID, USER_ID, add_image, png_bytes

HEADERS = {"X-User-Id": USER_ID}


def _client(container) -> TestClient:
    return TestClient(create_app(container))


def _events(body: str) -> list[dict[str, object]]:
    return [
        json.loads(block[len("data: ") :])
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


def test_requests_without_user_are_rejected(container) -> None:
    client = _client(container)

    response = client.get("/api/sessions")

    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


def test_session_crud(container) -> None:
    client = _client(container)

    created = client.post(
        "/api/sessions", json={"name": "Dogs", "description": "d"}, headers=HEADERS
    )
    assert created.status_code == 201
    session_id = created.json()["id"]

    listed = client.get("/api/sessions", headers=HEADERS).json()["sessions"]
    assert [item["name"] for item in listed] == ["Dogs"]

    patched = client.patch(
        f"/api/sessions/{session_id}", json={"status": "archived"}, headers=HEADERS
    )
    assert patched.json()["status"] == "archived"

    foreign = client.get(
        f"/api/sessions/{session_id}", headers={"X-User-Id": OTHER_USER_ID}
    )
    assert foreign.status_code == 404

    deleted = client.delete(f"/api/sessions/{session_id}", headers=HEADERS)
    assert deleted.status_code == 204
    missing = client.get(f"/api/sessions/{session_id}", headers=HEADERS)
    assert missing.status_code == 404


def test_short_session_name_is_rejected(container) -> None:
    response = _client(container).post(
        "/api/sessions", json={"name": "ab"}, headers=HEADERS
    )

    assert response.status_code == 422


def test_upload_and_serve_image(container, session) -> None:
    client = _client(container)
    content = png_bytes(width=9, height=2)
    metadata = {"prompt": "a red bar", "generator_used": "dalle", "tags": ["bar"]}

    uploaded = client.post(
        f"/api/sessions/{session.id}/images",
        files={"file": ("bar.png", content, "image/png")},
        data={"metadata": json.dumps(metadata)},
        headers=HEADERS,
    )

    assert uploaded.status_code == 201
    body = uploaded.json()
    assert body["image_dimensions"] == {"width": 9, "height": 2}
    assert body["original_filename"] == "bar.png"

    served = client.get(f"/api/images/{body['id']}")
    assert served.status_code == 200
    assert served.headers["content-type"] == "image/png"
    assert served.content == content


def test_upload_rejects_bad_input(container, session) -> None:
    client = _client(container)
    url = f"/api/sessions/{session.id}/images"
    metadata = json.dumps({"prompt": "p", "generator_used": "dalle"})

    bad_metadata = client.post(
        url,
        files={"file": ("a.png", png_bytes(), "image/png")},
        data={"metadata": "{not json"},
        headers=HEADERS,
    )
    not_image = client.post(
        url,
        files={"file": ("a.png", b"plain text", "image/png")},
        data={"metadata": metadata},
        headers=HEADERS,
    )

    assert bad_metadata.status_code == 400
    assert not_image.status_code == 400


def test_missing_image_file_lists_searched_locations(
    container, store, session
) -> None:
    image = add_image(store, session, "gone.png", write_file=False)
    client = _client(container)

    response = client.get(f"/api/images/{image.id}")

    assert response.status_code == 404
    assert response.text.startswith("Image file not found. Searched locations:")
    assert "gone.png" in response.text


def test_update_and_delete_image(container, store, session) -> None:
    image = add_image(store, session, "a.png")
    client = _client(container)

    patched = client.patch(
        f"/api/images/{image.id}", json={"quality_rating": 5}, headers=HEADERS
    )
    assert patched.status_code == 200
    assert patched.json()["quality_rating"] == 5

    foreign = client.delete(
        f"/api/images/{image.id}", headers={"X-User-Id": OTHER_USER_ID}
    )
    assert foreign.status_code == 404

    deleted = client.delete(f"/api/images/{image.id}", headers=HEADERS)
    assert deleted.status_code == 204
    assert store.get_image(image.id) is None


def test_json_export_is_an_attachment(container, store, session) -> None:
    add_image(store, session, "a.png")

    response = _client(container).post(
        f"/api/sessions/{session.id}/export", json={"mode": "json"}, headers=HEADERS
    )

    assert response.status_code == 200
    assert response.headers["content-disposition"] == (
        'attachment; filename="Cats_export.json"'
    )
    assert response.json()["images"][0]["file_path"] == "images/a.png"


def test_full_export_streams_zip(container, store, session) -> None:
    add_image(store, session, "a.png", b"aaaa")
    client = _client(container)

    response = client.post(
        f"/api/sessions/{session.id}/export", json={"mode": "full"}, headers=HEADERS
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["content-disposition"] == (
        'attachment; filename="Cats_full_export.zip"'
    )
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    archive = zipfile.ZipFile(io.BytesIO(response.content))
    assert archive.read("images/a.png") == b"aaaa"

    snapshot = client.get(
        f"/api/sessions/{session.id}/export-progress/snapshot", headers=HEADERS
    )
    assert snapshot.json()["status"] == "complete"
    assert snapshot.json()["percentage"] == 100


def test_export_error_statuses(container, store, session) -> None:
    add_image(store, session, "gone.png", write_file=False)
    client = _client(container)
    url = f"/api/sessions/{session.id}/export"

    invalid = client.post(url, json={"mode": "tarball"}, headers=HEADERS)
    empty = client.post(url, json={"mode": "full"}, headers=HEADERS)
    foreign = client.post(
        url, json={"mode": "json"}, headers={"X-User-Id": OTHER_USER_ID}
    )

    assert invalid.status_code == 400
    assert empty.status_code == 422
    assert empty.json()["detail"] == {
        "error": "No images to export",
        "warnings": ["orig_gone.png: file not found"],
    }
    assert foreign.status_code == 404


def test_progress_stream_ends_after_terminal_state(
    container, progress_store, session
) -> None:
    key = progress_key(session.id, USER_ID)
    progress_store.start(key, str(session.id), status="processing")
    progress_store.update(key, status="complete", percentage=100)

    response = _client(container).get(
        f"/api/sessions/{session.id}/export-progress", headers=HEADERS
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _events(response.text)
    assert events[0]["type"] == "connected"
    assert events[-1]["type"] == "progress"
    assert events[-1]["status"] == "complete"
    assert events[-1]["sessionId"] == str(session.id)
    assert progress_store.get(key) is None


def test_progress_snapshot_without_export(container, session) -> None:
    response = _client(container).get(
        f"/api/sessions/{session.id}/export-progress/snapshot", headers=HEADERS
    )

    assert response.status_code == 404


def test_import_endpoint(container, store) -> None:
    document = {
        "session": {"name": "Birds"},
        "images": [],
        "export_timestamp": "2024-01-01T00:00:00+00:00",
        "export_version": "1.0.0",
    }
    client = _client(container)

    ok = client.post(
        "/api/import",
        files={"file": ("birds.json", json.dumps(document), "application/json")},
        data={"options": json.dumps({"mode": "new"})},
        headers=HEADERS,
    )
    broken = client.post(
        "/api/import",
        files={"file": ("birds.json", "{}", "application/json")},
        data={"options": json.dumps({"mode": "new"})},
        headers=HEADERS,
    )
    wrong_type = client.post(
        "/api/import",
        files={"file": ("birds.txt", "hi", "text/plain")},
        data={"options": json.dumps({"mode": "new"})},
        headers=HEADERS,
    )
    bad_options = client.post(
        "/api/import",
        files={"file": ("birds.json", json.dumps(document), "application/json")},
        data={"options": json.dumps({"mode": "merge"})},
        headers=HEADERS,
    )

    assert ok.status_code == 200
    assert ok.json()["success"] is True
    assert store.get_session(UUID(ok.json()["sessionId"])) is not None
    assert broken.status_code == 400
    assert broken.json()["success"] is False
    assert broken.json()["imported"] == 0
    assert wrong_type.status_code == 400
    assert bad_options.status_code == 400


def test_health(container, session) -> None:
    with TestClient(create_app(container)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["checks"]["sessions"] == 1
