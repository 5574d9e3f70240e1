"""Metadata store interface consumed by the transfer services."""

from typing import Protocol
from uuid import UUID

from synth_collect.domain.images import ImageRecord, NewImage
from synth_collect.domain.sessions import SessionRecord


class CollectionStore(Protocol):
    """Keyed record store for sessions and their images.

    Image mutations keep the owning session's ``image_count`` equal to the
    number of image records that remain.
    """

    def create_session(
        self,
        name: str,
        created_by: str,
        description: str | None = None,
        status: str = "active",
    ) -> SessionRecord:
        """Create a session and return it."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def list_sessions(self, user_id: str | None = None) -> list[SessionRecord]:
        """Return sessions, newest update first, optionally for one owner."""

    def update_session(
        self, session_id: UUID, changes: dict[str, object]
    ) -> SessionRecord:
        """Apply field changes to a session and return it."""

    def delete_session(self, session_id: UUID) -> None:
        """Delete a session and its images."""

    def create_image(self, image: NewImage) -> ImageRecord:
        """Create an image record and return it."""

    def get_image(self, image_id: UUID) -> ImageRecord | None:
        """Return an image record by id, if present."""

    def list_images(self, session_id: UUID) -> list[ImageRecord]:
        """Return image records of a session in insertion order."""

    def update_image(self, image_id: UUID, changes: dict[str, object]) -> ImageRecord:
        """Apply field changes to an image record and return it."""

    def delete_image(self, image_id: UUID) -> None:
        """Delete an image record and, best effort, its file."""
