"""JSON-file backed collection store."""

import json
import logging
import os
import shutil
import threading
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from pathlib import Path
from uuid import UUID, uuid4

from synth_collect.domain.images import (
    ImageRecord,
    NewImage,
    image_from_dict,
    image_to_dict,
)
from synth_collect.domain.sessions import (
    SessionRecord,
    session_from_dict,
    session_to_dict,
)
from synth_collect.errors import StorageError
from synth_collect.services.paths import session_dir, stored_to_absolute
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)

SESSION_CONFIG_FILE = "session_config.json"
SESSION_METADATA_FILE = "metadata.json"
IMAGE_MAPPING_FILE = "image-mapping.json"

_IMMUTABLE_IMAGE_FIELDS = {"id", "session_id", "upload_timestamp", "uploaded_by"}
_IMMUTABLE_SESSION_FIELDS = {"id", "created_at", "created_by"}


@dataclass
class JsonFileStorage(CollectionStore):
    """Store sessions as JSON files under the data root.

    Layout::

        <data_root>/sessions/<id>/session_config.json
        <data_root>/sessions/<id>/metadata.json     {"images": {id: record}}
        <data_root>/image-mapping.json              {image_id: session_id}
    """

    data_root: Path
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def create_session(
        self,
        name: str,
        created_by: str,
        description: str | None = None,
        status: str = "active",
    ) -> SessionRecord:
        """Create a session and return it."""
        now = datetime.now(tz=UTC)
        session = SessionRecord(
            id=uuid4(),
            name=name,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            status=status,  # type: ignore[arg-type]
            description=description,
        )
        with self._lock:
            self._write_json(self._config_path(session.id), session_to_dict(session))
            self._write_json(self._metadata_path(session.id), {"images": {}})
        _logger.info("Created session %s for %s", session.id, created_by)
        return session

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        with self._lock:
            row = self._read_json(self._config_path(session_id), None)
        if row is None:
            return None
        return session_from_dict(row)

    def list_sessions(self, user_id: str | None = None) -> list[SessionRecord]:
        """Return sessions, newest update first, optionally for one owner."""
        root = self.data_root / "sessions"
        sessions: list[SessionRecord] = []
        with self._lock:
            if not root.is_dir():
                return []
            for folder in root.iterdir():
                row = self._read_json(folder / SESSION_CONFIG_FILE, None)
                if row is None:
                    continue
                session = session_from_dict(row)
                if user_id is None or session.created_by == user_id:
                    sessions.append(session)
        return sorted(sessions, key=lambda item: item.updated_at, reverse=True)

    def update_session(
        self, session_id: UUID, changes: dict[str, object]
    ) -> SessionRecord:
        """Apply field changes to a session and return it."""
        allowed = {
            key: value
            for key, value in changes.items()
            if key not in _IMMUTABLE_SESSION_FIELDS
        }
        with self._lock:
            session = self._require_session(session_id)
            updated = replace(
                session, **{"updated_at": datetime.now(tz=UTC), **allowed}
            )
            self._write_json(self._config_path(session_id), session_to_dict(updated))
        return updated

    def delete_session(self, session_id: UUID) -> None:
        """Delete a session folder, its images and their mapping entries."""
        with self._lock:
            images = self._load_images(session_id)
            mapping = self._read_json(self._mapping_path(), {})
            for image_id in images:
                mapping.pop(image_id, None)
            self._write_json(self._mapping_path(), mapping)
            folder = session_dir(self.data_root, session_id)
            try:
                shutil.rmtree(folder)
            except FileNotFoundError:
                return
            except OSError as exc:
                raise StorageError(
                    f"Failed to delete session {session_id}: {exc}"
                ) from exc
        _logger.info("Deleted session %s with %d images", session_id, len(images))

    def create_image(self, image: NewImage) -> ImageRecord:
        """Create an image record and return it."""
        values = {item.name: getattr(image, item.name) for item in fields(image)}
        record = ImageRecord(
            id=uuid4(), upload_timestamp=datetime.now(tz=UTC), **values
        )
        with self._lock:
            self._require_session(image.session_id)
            images = self._load_images(image.session_id)
            images[str(record.id)] = image_to_dict(record)
            self._save_images(image.session_id, images)
            mapping = self._read_json(self._mapping_path(), {})
            mapping[str(record.id)] = str(image.session_id)
            self._write_json(self._mapping_path(), mapping)
        return record

    def get_image(self, image_id: UUID) -> ImageRecord | None:
        """Return an image record by id, if present."""
        with self._lock:
            session_id = self._session_of(image_id)
            if session_id is None:
                return None
            row = self._load_images(session_id).get(str(image_id))
        if row is None:
            return None
        return image_from_dict(row)

    def list_images(self, session_id: UUID) -> list[ImageRecord]:
        """Return image records of a session in insertion order."""
        with self._lock:
            rows = list(self._load_images(session_id).values())
        return [image_from_dict(row) for row in rows]

    def update_image(self, image_id: UUID, changes: dict[str, object]) -> ImageRecord:
        """Apply field changes to an image record and return it."""
        allowed = {
            key: value
            for key, value in changes.items()
            if key not in _IMMUTABLE_IMAGE_FIELDS
        }
        with self._lock:
            session_id = self._session_of(image_id)
            images = self._load_images(session_id) if session_id else {}
            row = images.get(str(image_id))
            if session_id is None or row is None:
                raise StorageError(f"Image not found: {image_id}")
            updated = replace(image_from_dict(row), **allowed)
            images[str(image_id)] = image_to_dict(updated)
            self._save_images(session_id, images, touch_session=False)
        return updated

    def delete_image(self, image_id: UUID) -> None:
        """Delete an image record and, best effort, its file."""
        with self._lock:
            session_id = self._session_of(image_id)
            if session_id is None:
                return
            images = self._load_images(session_id)
            row = images.pop(str(image_id), None)
            self._save_images(session_id, images)
            mapping = self._read_json(self._mapping_path(), {})
            mapping.pop(str(image_id), None)
            self._write_json(self._mapping_path(), mapping)
        if row and row.get("file_path"):
            path = stored_to_absolute(self.data_root, str(row["file_path"]))
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                _logger.warning("Failed to remove image file %s: %s", path, exc)

    def _require_session(self, session_id: UUID) -> SessionRecord:
        session = self.get_session(session_id)
        if session is None:
            raise StorageError(f"Session not found: {session_id}")
        return session

    def _session_of(self, image_id: UUID) -> UUID | None:
        mapping = self._read_json(self._mapping_path(), {})
        session_id = mapping.get(str(image_id))
        if session_id is not None:
            return UUID(session_id)
        # Mapping can lag behind folders copied in by hand.
        root = self.data_root / "sessions"
        if not root.is_dir():
            return None
        for folder in root.iterdir():
            images = self._read_json(folder / SESSION_METADATA_FILE, {"images": {}})
            if str(image_id) in images.get("images", {}):
                return UUID(folder.name)
        return None

    def _load_images(self, session_id: UUID) -> dict[str, dict]:
        payload = self._read_json(self._metadata_path(session_id), {"images": {}})
        return dict(payload.get("images") or {})

    def _save_images(
        self,
        session_id: UUID,
        images: dict[str, dict],
        touch_session: bool = True,
    ) -> None:
        self._write_json(self._metadata_path(session_id), {"images": images})
        session = self._require_session(session_id)
        if touch_session or session.image_count != len(images):
            self.update_session(session_id, {"image_count": len(images)})

    def _config_path(self, session_id: UUID) -> Path:
        return session_dir(self.data_root, session_id) / SESSION_CONFIG_FILE

    def _metadata_path(self, session_id: UUID) -> Path:
        return session_dir(self.data_root, session_id) / SESSION_METADATA_FILE

    def _mapping_path(self) -> Path:
        return self.data_root / IMAGE_MAPPING_FILE

    @staticmethod
    def _read_json(path: Path, default: object) -> dict:
        if not path.exists():
            return default  # type: ignore[return-value]
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    @staticmethod
    def _write_json(path: Path, payload: object) -> None:
        temp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(temp_path, path)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc
