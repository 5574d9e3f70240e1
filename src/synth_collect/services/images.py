"""Serving stored image files."""

from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

from synth_collect.domain.images import ImageRecord
from synth_collect.errors import ImageNotFoundError
from synth_collect.services.paths import PathResolver
from synth_collect.services.storage import CollectionStore

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def content_type_for(path: Path) -> str:
    """Return the media type for an image file name."""
    return CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


@dataclass(frozen=True)
class ServedImage:
    record: ImageRecord
    path: Path
    media_type: str


@dataclass
class ImageService:
    """Locate image files for download, healing stale paths on the way."""

    store: CollectionStore
    resolver: PathResolver

    def open_image(self, image_id: UUID) -> ServedImage:
        """Return the file of an image record.

        Raises ``ImageNotFoundError`` for unknown ids and
        ``ImageFileNotFoundError`` when no candidate location has the file.
        """
        record = self.store.get_image(image_id)
        if record is None:
            raise ImageNotFoundError(image_id)
        resolved = self.resolver.resolve(record, heal=True)
        return ServedImage(
            record=record,
            path=resolved.path,
            media_type=content_type_for(resolved.path),
        )
