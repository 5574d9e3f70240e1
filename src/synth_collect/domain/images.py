"""Domain models for annotated images."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import UUID

GeneratorName = Literal["midjourney", "dalle", "stable-diffusion", "other"]

GENERATORS: tuple[str, ...] = ("midjourney", "dalle", "stable-diffusion", "other")


@dataclass(frozen=True)
class ImageDimensions:
    """Pixel size of an image."""

    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class NewImage:
    """Fields required to create an image record."""

    session_id: UUID
    filename: str
    original_filename: str
    file_path: str
    file_size: int
    image_dimensions: ImageDimensions
    prompt: str
    generator_used: GeneratorName
    uploaded_by: str
    generation_settings: dict[str, object] | None = None
    user_description: str | None = None
    ai_scores: dict[str, float] = field(default_factory=dict)
    quality_rating: int | None = None
    tags: list[str] = field(default_factory=list)
    notes: str | None = None


@dataclass(frozen=True)
class ImageRecord:
    """Represents a persisted image within a session."""

    id: UUID
    session_id: UUID
    filename: str
    original_filename: str
    file_path: str
    file_size: int
    image_dimensions: ImageDimensions
    prompt: str
    generator_used: GeneratorName
    upload_timestamp: datetime
    uploaded_by: str
    generation_settings: dict[str, object] | None = None
    user_description: str | None = None
    ai_scores: dict[str, float] = field(default_factory=dict)
    quality_rating: int | None = None
    tags: list[str] = field(default_factory=list)
    notes: str | None = None


def image_to_dict(image: ImageRecord) -> dict[str, object]:
    """Serialize an image record to plain JSON types."""
    return {
        "id": str(image.id),
        "session_id": str(image.session_id),
        "filename": image.filename,
        "original_filename": image.original_filename,
        "file_path": image.file_path,
        "file_size": image.file_size,
        "image_dimensions": {
            "width": image.image_dimensions.width,
            "height": image.image_dimensions.height,
        },
        "prompt": image.prompt,
        "generator_used": image.generator_used,
        "generation_settings": image.generation_settings,
        "user_description": image.user_description,
        "ai_scores": dict(image.ai_scores),
        "quality_rating": image.quality_rating,
        "tags": list(image.tags),
        "notes": image.notes,
        "upload_timestamp": image.upload_timestamp.isoformat(),
        "uploaded_by": image.uploaded_by,
    }


def image_from_dict(row: dict[str, object]) -> ImageRecord:
    """Build an image record from a stored row."""
    dimensions = row.get("image_dimensions") or {}
    return ImageRecord(
        id=UUID(str(row["id"])),
        session_id=UUID(str(row["session_id"])),
        filename=str(row["filename"]),
        original_filename=str(row.get("original_filename", row["filename"])),
        file_path=str(row.get("file_path", "")),
        file_size=int(row.get("file_size", 0)),  # type: ignore[arg-type]
        image_dimensions=ImageDimensions(
            width=int(dimensions.get("width", 0)),  # type: ignore[union-attr]
            height=int(dimensions.get("height", 0)),  # type: ignore[union-attr]
        ),
        prompt=str(row.get("prompt", "")),
        generator_used=row.get("generator_used", "other"),  # type: ignore[arg-type]
        upload_timestamp=datetime.fromisoformat(str(row["upload_timestamp"])),
        uploaded_by=str(row.get("uploaded_by", "")),
        generation_settings=row.get("generation_settings"),  # type: ignore[arg-type]
        user_description=row.get("user_description"),  # type: ignore[arg-type]
        ai_scores=dict(row.get("ai_scores") or {}),  # type: ignore[arg-type]
        quality_rating=row.get("quality_rating"),  # type: ignore[arg-type]
        tags=list(row.get("tags") or []),  # type: ignore[arg-type]
        notes=row.get("notes"),  # type: ignore[arg-type]
    )
