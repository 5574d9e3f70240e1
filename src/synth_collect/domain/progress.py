"""Models for export progress reporting."""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ProgressStatus = Literal["starting", "validating", "processing", "complete", "error"]

STATUS_RANK: dict[str, int] = {
    "starting": 0,
    "validating": 1,
    "processing": 2,
    "complete": 3,
    "error": 3,
}
TERMINAL_STATUSES = frozenset({"complete", "error"})


class ExportProgress(BaseModel):
    """Snapshot of a running export, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    status: ProgressStatus = "starting"
    total_images: int = 0
    processed_images: int = 0
    failed_images: int = 0
    current_image: str | None = None
    percentage: int = 0
    estimated_time_remaining: float | None = None
    start_time: float
    updated_at: float
    message: str = ""
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Return true once the export completed or failed."""
        return self.status in TERMINAL_STATUSES

    def to_wire(self) -> dict[str, object]:
        """Return the camelCase payload sent to clients."""
        return self.model_dump(by_alias=True)
