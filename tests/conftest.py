"""Shared test fixtures."""

import io
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import pytest
from PIL import Image

from synth_collect.adapters.json_storage import JsonFileStorage
from synth_collect.config import Settings
from synth_collect.containers import AppContainer, build_container
from synth_collect.domain.images import ImageDimensions, ImageRecord, NewImage
from synth_collect.domain.progress import ExportProgress
from synth_collect.domain.sessions import SessionRecord
from synth_collect.errors import StorageError
from synth_collect.services.paths import canonical_path, canonical_stored_path
from synth_collect.services.progress import InMemoryProgressStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def png_bytes(width: int = 4, height: int = 3, color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class FakeClock:
    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class RecordingProgressStore(InMemoryProgressStore):
    """Progress store that keeps every snapshot it stored."""

    history: list[ExportProgress] = field(default_factory=list)

    def update(self, key: str, **changes: object) -> ExportProgress | None:
        progress = super().update(key, **changes)
        if progress is not None:
            self.history.append(progress)
        return progress


@dataclass
class FailingProgressStore(InMemoryProgressStore):
    def update(self, key: str, **changes: object) -> ExportProgress | None:
        raise RuntimeError("progress backend down")


@dataclass
class FlakyStorage(JsonFileStorage):
    """JSON store whose image creation fails after a number of successes."""

    fail_after: int = 1
    created: int = 0

    def create_image(self, image: NewImage) -> ImageRecord:
        if self.created >= self.fail_after:
            raise StorageError("disk full")
        self.created += 1
        return super().create_image(image)


def add_image(  # noqa: PLR0913
    store: JsonFileStorage,
    session: SessionRecord,
    filename: str,
    content: bytes | None = None,
    *,
    original_filename: str | None = None,
    prompt: str | None = None,
    generator: str = "midjourney",
    file_path: str | None = None,
    write_file: bool = True,
) -> ImageRecord:
    """Create an image record and, by default, its canonical file."""
    data = png_bytes() if content is None else content
    if write_file:
        target = canonical_path(store.data_root, session.id, filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return store.create_image(
        NewImage(
            session_id=session.id,
            filename=filename,
            original_filename=original_filename or f"orig_{filename}",
            file_path=file_path or canonical_stored_path(session.id, filename),
            file_size=len(data),
            image_dimensions=ImageDimensions(width=4, height=3),
            prompt=prompt or f"prompt for {filename}",
            generator_used=generator,  # type: ignore[arg-type]
            uploaded_by=session.created_by,
            ai_scores={"aesthetic": 7.5},
            quality_rating=4,
            tags=["test"],
        )
    )


def session_folder(data_root: Path, session_id: UUID) -> Path:
    return data_root / "sessions" / str(session_id)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_root=tmp_path / "data",
        storage_backend="json",
        environment="test",
        export_retry_base_delay_seconds=0.0,
        progress_poll_interval_seconds=0.01,
        progress_grace_seconds=0.0,
    )


@pytest.fixture
def store(settings: Settings) -> JsonFileStorage:
    return JsonFileStorage(settings.data_root)


@pytest.fixture
def progress_store() -> RecordingProgressStore:
    return RecordingProgressStore()


@pytest.fixture
def session(store: JsonFileStorage) -> SessionRecord:
    return store.create_session(name="Cats", created_by=USER_ID)


@pytest.fixture
def container(
    settings: Settings,
    store: JsonFileStorage,
    progress_store: RecordingProgressStore,
) -> AppContainer:
    return build_container(settings, store=store, progress_store=progress_store)
