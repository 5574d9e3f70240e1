"""Models for import requests and results."""

from dataclasses import dataclass, field
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from synth_collect.domain.bundles import BundleImage
from synth_collect.domain.images import ImageRecord

ImportMode = Literal["new", "merge"]
DuplicateStrategy = Literal["skip", "replace", "rename"]
DuplicateReason = Literal["same_name", "same_original_name", "same_prompt"]


class ImportOptions(BaseModel):
    """Import options as posted by the UI."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mode: ImportMode
    target_session_id: UUID | None = None
    duplicate_strategy: DuplicateStrategy = "skip"
    preserve_ids: bool = False

    @field_validator("target_session_id", mode="before")
    @classmethod
    def _blank_target_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _target_matches_mode(self) -> "ImportOptions":
        if self.mode == "merge" and self.target_session_id is None:
            raise ValueError("targetSessionId is required when mode is 'merge'")
        if self.mode == "new":
            self.target_session_id = None
        return self


@dataclass(frozen=True)
class DuplicateMatch:
    """Pairing of an existing record with a colliding incoming entry."""

    existing: ImageRecord
    incoming: BundleImage
    reason: DuplicateReason


@dataclass
class ImportResult:
    """Outcome of an import, including soft errors."""

    success: bool
    session_id: UUID | None = None
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, object]:
        """Return the camelCase payload sent to clients."""
        return {
            "success": self.success,
            "sessionId": str(self.session_id) if self.session_id else "",
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }
