"""Request payloads accepted by the HTTP API."""

from typing import Any

from pydantic import BaseModel, Field

from synth_collect.domain.images import GeneratorName
from synth_collect.domain.sessions import SessionStatus


class CreateSessionRequest(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)


class UpdateSessionRequest(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    status: SessionStatus | None = None


class ImageMetadataRequest(BaseModel):
    """Annotation fields sent alongside an uploaded image."""

    prompt: str = Field(min_length=1, max_length=1000)
    generator_used: GeneratorName
    generation_settings: dict[str, Any] | None = None
    user_description: str | None = Field(default=None, max_length=500)
    ai_scores: dict[str, float] = Field(default_factory=dict)
    quality_rating: int | None = Field(default=None, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=1000)


class UpdateImageRequest(BaseModel):
    prompt: str | None = Field(default=None, min_length=1, max_length=1000)
    generator_used: GeneratorName | None = None
    generation_settings: dict[str, Any] | None = None
    user_description: str | None = Field(default=None, max_length=500)
    ai_scores: dict[str, float] | None = None
    quality_rating: int | None = Field(default=None, ge=1, le=5)
    tags: list[str] | None = None
    notes: str | None = Field(default=None, max_length=1000)


class ExportRequest(BaseModel):
    mode: str = "json"
