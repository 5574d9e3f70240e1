"""Exception types shared by the transfer services."""

from pathlib import Path
from uuid import UUID


class SynthCollectError(Exception):
    """Base class for application errors."""


class StorageError(SynthCollectError):
    """The metadata store could not complete an operation."""


class SessionAccessError(SynthCollectError):
    """Session does not exist or is not owned by the requester."""

    def __init__(self) -> None:
        super().__init__("Session not found or access denied")


class ImageNotFoundError(SynthCollectError):
    """Image record does not exist."""

    def __init__(self, image_id: UUID) -> None:
        super().__init__(f"Image not found: {image_id}")
        self.image_id = image_id


class BundleDecodeError(SynthCollectError):
    """Uploaded file is not a readable bundle."""


class BundleValidationError(SynthCollectError):
    """Bundle document failed schema validation."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid bundle: " + "; ".join(errors))
        self.errors = errors


class NoImagesToExportError(SynthCollectError):
    """Full export requested but no image file is usable."""

    def __init__(self, warnings: list[str] | None = None) -> None:
        super().__init__("No images to export")
        self.warnings = warnings or []


class ExportFileError(SynthCollectError):
    """An image file could not be read during export."""


class ExportTimeoutError(SynthCollectError):
    """Export exceeded its overall time budget."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Export timed out after {timeout_seconds:g} seconds")
        self.timeout_seconds = timeout_seconds


class ExportCancelledError(SynthCollectError):
    """Export was cancelled by the client."""

    def __init__(self) -> None:
        super().__init__("Export cancelled by client")


class ArchiveEntryError(SynthCollectError):
    """A single archive entry could not be written."""


class ArchiveEntryNotFoundError(SynthCollectError):
    """A record references an entry that is not in the archive."""

    def __init__(self, original_filename: str, searched: str) -> None:
        super().__init__(
            f"Image file not found in archive: {original_filename} "
            f"(searched for '{searched}')"
        )
        self.original_filename = original_filename
        self.searched = searched


class FileVerificationError(SynthCollectError):
    """Extracted file is missing or incomplete after writing."""

    def __init__(self, path: Path, expected_size: int) -> None:
        super().__init__(
            f"Failed to verify written file {path} (expected {expected_size} bytes)"
        )
        self.path = path
        self.expected_size = expected_size


class ImageFileNotFoundError(SynthCollectError):
    """No candidate location holds the image file."""

    def __init__(self, image_id: UUID, attempted: list[Path]) -> None:
        locations = "\n".join(f"- {path}" for path in attempted)
        super().__init__(f"Image file not found. Searched locations:\n{locations}")
        self.image_id = image_id
        self.attempted = attempted


class InvalidImageError(SynthCollectError):
    """Uploaded file is not a supported image."""
