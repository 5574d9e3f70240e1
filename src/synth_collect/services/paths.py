"""Image file location, canonical paths and self-healing lookups."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from uuid import UUID

from synth_collect.domain.images import ImageRecord
from synth_collect.errors import ImageFileNotFoundError
from synth_collect.services.storage import CollectionStore

_logger = logging.getLogger(__name__)

CandidateFn = Callable[[ImageRecord], Path | None]


def session_dir(data_root: Path, session_id: UUID) -> Path:
    """Return the folder holding a session's files."""
    return data_root / "sessions" / str(session_id)


def session_images_dir(data_root: Path, session_id: UUID) -> Path:
    """Return the folder holding a session's image files."""
    return session_dir(data_root, session_id) / "images"


def canonical_path(data_root: Path, session_id: UUID, filename: str) -> Path:
    """Return the single expected on-disk location of an image."""
    return session_images_dir(data_root, session_id) / filename


def canonical_stored_path(session_id: UUID, filename: str) -> str:
    """Return the data-root relative path stored for a canonical image."""
    return str(PurePosixPath("sessions", str(session_id), "images", filename))


def stored_to_absolute(data_root: Path, stored: str) -> Path:
    """Interpret a stored path: absolute as is, otherwise under the data root."""
    path = Path(stored)
    if path.is_absolute():
        return path
    return data_root / path


def absolute_to_stored(data_root: Path, path: Path) -> str:
    """Return the portable stored form of a path (data-root relative if possible)."""
    try:
        relative = path.resolve().relative_to(data_root.resolve())
    except ValueError:
        return str(path)
    return relative.as_posix()


def _stored(data_root: Path) -> CandidateFn:
    def locate(record: ImageRecord) -> Path | None:
        if not record.file_path:
            return None
        return stored_to_absolute(data_root, record.file_path)

    return locate


def _canonical(data_root: Path) -> CandidateFn:
    return lambda record: canonical_path(data_root, record.session_id, record.filename)


def _session_folder(data_root: Path) -> CandidateFn:
    return lambda record: session_dir(data_root, record.session_id) / record.filename


def _data_root_relative(data_root: Path) -> CandidateFn:
    def locate(record: ImageRecord) -> Path | None:
        stripped = record.file_path.replace("\\", "/").lstrip("/")
        if stripped.startswith("data/"):
            stripped = stripped[len("data/") :]
        return data_root / stripped if stripped else None

    return locate


def _sessions_suffix(data_root: Path) -> CandidateFn:
    # Absolute paths written on another machine or container.
    def locate(record: ImageRecord) -> Path | None:
        normalized = record.file_path.replace("\\", "/")
        marker = normalized.rfind("sessions/")
        if marker < 0:
            return None
        return data_root / normalized[marker:]

    return locate


def _data_root_filename(data_root: Path) -> CandidateFn:
    return lambda record: data_root / record.filename


def default_candidates(data_root: Path) -> list[tuple[str, CandidateFn]]:
    """Ordered lookup locations; the first is the stored path."""
    return [
        ("stored", _stored(data_root)),
        ("canonical", _canonical(data_root)),
        ("session_folder", _session_folder(data_root)),
        ("data_root_relative", _data_root_relative(data_root)),
        ("sessions_suffix", _sessions_suffix(data_root)),
        ("data_root_filename", _data_root_filename(data_root)),
    ]


@dataclass(frozen=True)
class ResolvedImage:
    """Where an image file was found."""

    path: Path
    source: str
    attempted: list[Path]

    @property
    def primary(self) -> bool:
        """Return true when the stored path itself was valid."""
        return self.source == "stored"


@dataclass
class PathResolver:
    """Try candidate locations in order and heal stale stored paths."""

    data_root: Path
    store: CollectionStore
    candidates: list[tuple[str, CandidateFn]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.candidates:
            self.candidates = default_candidates(self.data_root)

    def candidate_paths(self, record: ImageRecord) -> list[tuple[str, Path]]:
        """Return distinct candidate paths in lookup order."""
        seen: set[Path] = set()
        paths: list[tuple[str, Path]] = []
        for name, locate in self.candidates:
            path = locate(record)
            if path is None or path in seen:
                continue
            seen.add(path)
            paths.append((name, path))
        return paths

    def locate(self, record: ImageRecord) -> ResolvedImage:
        """Return the first existing candidate without touching the store."""
        attempted: list[Path] = []
        for name, path in self.candidate_paths(record):
            attempted.append(path)
            if path.is_file():
                return ResolvedImage(path=path, source=name, attempted=attempted)
        raise ImageFileNotFoundError(record.id, attempted)

    def resolve(self, record: ImageRecord, heal: bool = True) -> ResolvedImage:
        """Locate an image file, rewriting its stored path on a fallback hit."""
        try:
            resolved = self.locate(record)
        except ImageFileNotFoundError as exc:
            _logger.error(
                "Image file missing for %s (session %s): tried %s",
                record.id,
                record.session_id,
                ", ".join(str(path) for path in exc.attempted),
            )
            raise
        if heal and not resolved.primary:
            self.heal(record, resolved.path)
        return resolved

    def heal(self, record: ImageRecord, found: Path) -> bool:
        """Point the stored path at ``found``; return true when it changed."""
        new_stored = absolute_to_stored(self.data_root, found)
        if new_stored == record.file_path:
            return False
        try:
            self.store.update_image(record.id, {"file_path": new_stored})
        except Exception:
            _logger.exception("Failed to heal stored path for image %s", record.id)
            return False
        _logger.info(
            "Healed stored path for image %s: %s -> %s",
            record.id,
            record.file_path,
            new_stored,
        )
        return True
