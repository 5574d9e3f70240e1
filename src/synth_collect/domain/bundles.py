"""Pydantic models for export/import bundle documents."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from synth_collect.domain.images import GeneratorName
from synth_collect.domain.sessions import SessionStatus

EXPORT_VERSION = "1.0.0"
METADATA_ENTRY = "metadata.json"
IMAGES_PREFIX = "images/"


class BundleDimensions(BaseModel):
    """Pixel size as carried in a bundle."""

    width: int = Field(ge=0)
    height: int = Field(ge=0)


class BundleSession(BaseModel):
    """Session fields read from a bundle; everything else is ignored."""

    name: str
    description: str | None = None
    status: SessionStatus | None = None


class BundleImage(BaseModel):
    """Image entry of a bundle.

    Bookkeeping fields written by earlier exports (``id``, ``session_id``,
    timestamps) are accepted but never reused on import.
    """

    filename: str
    original_filename: str
    file_path: str | None = None
    file_size: int = Field(ge=0)
    image_dimensions: BundleDimensions
    prompt: str
    generator_used: GeneratorName
    ai_scores: dict[str, float] | None = None
    quality_rating: int | None = Field(default=None, ge=1, le=5)
    tags: list[str] | None = None
    notes: str | None = None
    generation_settings: dict[str, Any] | None = None
    user_description: str | None = None
    id: str | None = None
    session_id: str | None = None
    upload_timestamp: str | None = None
    uploaded_by: str | None = None

    @field_validator("filename")
    @classmethod
    def _bare_filename(cls, value: str) -> str:
        if value in {".", ".."} or "/" in value or "\\" in value:
            raise ValueError("must be a bare file name")
        return value


class Bundle(BaseModel):
    """A single-session export document."""

    session: BundleSession
    images: list[BundleImage]
    export_timestamp: str
    export_version: str
