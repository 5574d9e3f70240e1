"""Session and image management."""

import asyncio
import io
import logging
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from uuid import UUID

from PIL import Image, UnidentifiedImageError

from synth_collect.domain.images import ImageDimensions, ImageRecord, NewImage
from synth_collect.domain.sessions import SessionRecord
from synth_collect.errors import (
    ImageNotFoundError,
    InvalidImageError,
    SessionAccessError,
)
from synth_collect.services.paths import canonical_path, canonical_stored_path
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "webp", "gif"})

_EDITABLE_IMAGE_FIELDS = frozenset(
    {
        "prompt",
        "generator_used",
        "generation_settings",
        "user_description",
        "ai_scores",
        "quality_rating",
        "tags",
        "notes",
    }
)


def generate_image_filename(original_filename: str) -> str:
    """Return a collision resistant stored name keeping the original extension."""
    extension = PurePath(original_filename).suffix.lower().lstrip(".") or "png"
    timestamp = int(time.time() * 1000)
    return f"img_{timestamp}_{secrets.token_hex(4)}.{extension}"


def read_dimensions(content: bytes) -> ImageDimensions:
    """Return the pixel size of encoded image bytes."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError("Uploaded file is not a readable image") from exc
    return ImageDimensions(width=width, height=height)


@dataclass
class SessionLocks:
    """One asyncio lock per session for mutating operations."""

    _locks: dict[UUID, asyncio.Lock] = field(default_factory=dict)

    def for_session(self, session_id: UUID) -> asyncio.Lock:
        """Return the lock guarding a session."""
        return self._locks.setdefault(session_id, asyncio.Lock())

    def discard(self, session_id: UUID) -> None:
        """Forget the lock of a deleted session."""
        self._locks.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._locks


@dataclass
class SessionService:
    """Owner-checked session and image operations."""

    store: CollectionStore
    data_root: Path
    locks: SessionLocks = field(default_factory=SessionLocks)

    def create_session(
        self, user_id: str, name: str, description: str | None = None
    ) -> SessionRecord:
        """Create a session owned by the user."""
        cleaned = name.strip()
        if not cleaned:
            raise ValueError("Session name is required")
        return self.store.create_session(
            name=cleaned, created_by=user_id, description=description
        )

    def list_sessions(self, user_id: str) -> list[SessionRecord]:
        """Return the user's sessions, newest first."""
        return self.store.list_sessions(user_id)

    def get_owned_session(self, session_id: UUID, user_id: str) -> SessionRecord:
        """Return a session if the user owns it.

        Missing and foreign sessions raise the same error.
        """
        session = self.store.get_session(session_id)
        if session is None or session.created_by != user_id:
            raise SessionAccessError()
        return session

    async def update_session(
        self, session_id: UUID, user_id: str, changes: dict[str, object]
    ) -> SessionRecord:
        """Edit name, description or status of an owned session."""
        self.get_owned_session(session_id, user_id)
        unknown = set(changes) - {"name", "description", "status"}
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        async with self.locks.for_session(session_id):
            return self.store.update_session(session_id, changes)

    async def delete_session(self, session_id: UUID, user_id: str) -> None:
        """Delete a session and everything in it."""
        self.get_owned_session(session_id, user_id)
        async with self.locks.for_session(session_id):
            await asyncio.to_thread(self.store.delete_session, session_id)
        self.locks.discard(session_id)

    def list_images(self, session_id: UUID, user_id: str) -> list[ImageRecord]:
        """Return the images of an owned session."""
        self.get_owned_session(session_id, user_id)
        return self.store.list_images(session_id)

    def get_owned_image(self, image_id: UUID, user_id: str) -> ImageRecord:
        """Return an image whose session the user owns."""
        image = self.store.get_image(image_id)
        if image is None:
            raise ImageNotFoundError(image_id)
        self.get_owned_session(image.session_id, user_id)
        return image

    async def add_image(  # noqa: PLR0913
        self,
        session_id: UUID,
        user_id: str,
        original_filename: str,
        content: bytes,
        metadata: dict[str, object],
    ) -> ImageRecord:
        """Store an uploaded image file and create its record."""
        self.get_owned_session(session_id, user_id)
        extension = PurePath(original_filename).suffix.lower().lstrip(".")
        if extension not in IMAGE_EXTENSIONS:
            raise InvalidImageError(f"Unsupported image type: .{extension}")
        dimensions = read_dimensions(content)
        filename = generate_image_filename(original_filename)
        destination = canonical_path(self.data_root, session_id, filename)
        async with self.locks.for_session(session_id):
            await asyncio.to_thread(_write_file, destination, content)
            image = self.store.create_image(
                NewImage(
                    session_id=session_id,
                    filename=filename,
                    original_filename=original_filename,
                    file_path=canonical_stored_path(session_id, filename),
                    file_size=len(content),
                    image_dimensions=dimensions,
                    uploaded_by=user_id,
                    **metadata,  # type: ignore[arg-type]
                )
            )
        _logger.info("Stored image %s in session %s", image.id, session_id)
        return image

    async def update_image(
        self, image_id: UUID, user_id: str, changes: dict[str, object]
    ) -> ImageRecord:
        """Edit annotation fields; identity and file fields stay fixed."""
        image = self.get_owned_image(image_id, user_id)
        unknown = set(changes) - _EDITABLE_IMAGE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        async with self.locks.for_session(image.session_id):
            return self.store.update_image(image_id, changes)

    async def delete_image(self, image_id: UUID, user_id: str) -> None:
        """Delete an image record and its file."""
        image = self.get_owned_image(image_id, user_id)
        async with self.locks.for_session(image.session_id):
            await asyncio.to_thread(self.store.delete_image, image_id)


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
