"""Supabase-backed collection store."""

import logging
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from pathlib import Path
from uuid import UUID

from supabase import Client

from synth_collect.domain.images import (
    ImageDimensions,
    ImageRecord,
    NewImage,
    image_from_dict,
)
from synth_collect.domain.sessions import (
    ExportRecord,
    SessionRecord,
    export_record_to_dict,
    session_from_dict,
)
from synth_collect.errors import StorageError
from synth_collect.services.paths import stored_to_absolute
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)

_SESSION_COLUMNS = (
    "id, name, description, created_at, updated_at, created_by, "
    "image_count, status, export_history"
)


def _serialize(value: object) -> object:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, ImageDimensions):
        return {"width": value.width, "height": value.height}
    if isinstance(value, list) and value and isinstance(value[0], ExportRecord):
        return [export_record_to_dict(record) for record in value]
    return value


@dataclass
class SupabaseStorage(CollectionStore):
    """Supabase implementation for sessions and image records.

    Image files still live on local disk under ``data_root``.
    """

    client: Client
    data_root: Path

    def create_session(
        self,
        name: str,
        created_by: str,
        description: str | None = None,
        status: str = "active",
    ) -> SessionRecord:
        """Create a session row and return it."""
        response = (
            self.client.table("sessions")
            .insert(
                {
                    "name": name,
                    "description": description,
                    "created_by": created_by,
                    "status": status,
                    "image_count": 0,
                    "export_history": [],
                }
            )
            .execute()
        )
        if not response.data:
            raise StorageError("Failed to create session")
        return session_from_dict(response.data[0])

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return session_from_dict(response.data[0])

    def list_sessions(self, user_id: str | None = None) -> list[SessionRecord]:
        """Return sessions, newest update first, optionally for one owner."""
        query = self.client.table("sessions").select(_SESSION_COLUMNS)
        if user_id is not None:
            query = query.eq("created_by", user_id)
        response = query.order("updated_at", desc=True).execute()
        return [session_from_dict(row) for row in response.data or []]

    def update_session(
        self, session_id: UUID, changes: dict[str, object]
    ) -> SessionRecord:
        """Update session fields and return the stored row."""
        payload = {key: _serialize(value) for key, value in changes.items()}
        payload.setdefault("updated_at", datetime.now(tz=UTC).isoformat())
        response = (
            self.client.table("sessions")
            .update(payload)
            .eq("id", str(session_id))
            .execute()
        )
        if not response.data:
            raise StorageError(f"Session not found: {session_id}")
        return session_from_dict(response.data[0])

    def delete_session(self, session_id: UUID) -> None:
        """Delete a session; image rows cascade in the database."""
        self.client.table("images").delete().eq("session_id", str(session_id)).execute()
        self.client.table("sessions").delete().eq("id", str(session_id)).execute()

    def create_image(self, image: NewImage) -> ImageRecord:
        """Create an image row and refresh the session's image count."""
        payload = {
            item.name: _serialize(getattr(image, item.name)) for item in fields(image)
        }
        response = self.client.table("images").insert(payload).execute()
        if not response.data:
            raise StorageError("Failed to create image")
        self._refresh_image_count(image.session_id)
        return image_from_dict(response.data[0])

    def get_image(self, image_id: UUID) -> ImageRecord | None:
        """Return an image record by id, if present."""
        response = (
            self.client.table("images")
            .select("*")
            .eq("id", str(image_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return image_from_dict(response.data[0])

    def list_images(self, session_id: UUID) -> list[ImageRecord]:
        """Return image records of a session in upload order."""
        response = (
            self.client.table("images")
            .select("*")
            .eq("session_id", str(session_id))
            .order("upload_timestamp")
            .execute()
        )
        return [image_from_dict(row) for row in response.data or []]

    def update_image(self, image_id: UUID, changes: dict[str, object]) -> ImageRecord:
        """Update image fields and return the stored row."""
        payload = {key: _serialize(value) for key, value in changes.items()}
        response = (
            self.client.table("images")
            .update(payload)
            .eq("id", str(image_id))
            .execute()
        )
        if not response.data:
            raise StorageError(f"Image not found: {image_id}")
        return image_from_dict(response.data[0])

    def delete_image(self, image_id: UUID) -> None:
        """Delete an image row, its file (best effort) and refresh the count."""
        image = self.get_image(image_id)
        if image is None:
            return
        self.client.table("images").delete().eq("id", str(image_id)).execute()
        self._refresh_image_count(image.session_id)
        if not image.file_path:
            return
        path = stored_to_absolute(self.data_root, image.file_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            _logger.warning("Failed to remove image file %s: %s", path, exc)

    def _refresh_image_count(self, session_id: UUID) -> None:
        response = (
            self.client.table("images")
            .select("id")
            .eq("session_id", str(session_id))
            .execute()
        )
        self.client.table("sessions").update(
            {
                "image_count": len(response.data or []),
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", str(session_id)).execute()
