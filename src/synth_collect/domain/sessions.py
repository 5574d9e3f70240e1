"""Domain models for collection sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import UUID

SessionStatus = Literal["active", "archived", "exported"]
ExportFormat = Literal["json", "zip"]

SESSION_STATUSES: tuple[str, ...] = ("active", "archived", "exported")


@dataclass(frozen=True)
class ExportRecord:
    """One entry in a session's export history."""

    id: UUID
    exported_at: datetime
    exported_by: str
    format: ExportFormat
    file_path: str
    image_count: int


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted collection session."""

    id: UUID
    name: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    status: SessionStatus = "active"
    description: str | None = None
    image_count: int = 0
    export_history: list[ExportRecord] = field(default_factory=list)


def export_record_to_dict(record: ExportRecord) -> dict[str, object]:
    return {
        "id": str(record.id),
        "exported_at": record.exported_at.isoformat(),
        "exported_by": record.exported_by,
        "format": record.format,
        "file_path": record.file_path,
        "image_count": record.image_count,
    }


def export_record_from_dict(row: dict[str, object]) -> ExportRecord:
    return ExportRecord(
        id=UUID(str(row["id"])),
        exported_at=datetime.fromisoformat(str(row["exported_at"])),
        exported_by=str(row.get("exported_by", "")),
        format=row.get("format", "json"),  # type: ignore[arg-type]
        file_path=str(row.get("file_path", "")),
        image_count=int(row.get("image_count", 0)),  # type: ignore[arg-type]
    )


def session_to_dict(session: SessionRecord) -> dict[str, object]:
    """Serialize a session to plain JSON types."""
    return {
        "id": str(session.id),
        "name": session.name,
        "description": session.description,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
        "created_by": session.created_by,
        "image_count": session.image_count,
        "status": session.status,
        "export_history": [
            export_record_to_dict(record) for record in session.export_history
        ],
    }


def session_from_dict(row: dict[str, object]) -> SessionRecord:
    """Build a session from a stored row."""
    history = row.get("export_history") or []
    return SessionRecord(
        id=UUID(str(row["id"])),
        name=str(row["name"]),
        description=row.get("description"),  # type: ignore[arg-type]
        created_at=datetime.fromisoformat(str(row["created_at"])),
        updated_at=datetime.fromisoformat(str(row["updated_at"])),
        created_by=str(row["created_by"]),
        image_count=int(row.get("image_count", 0)),  # type: ignore[arg-type]
        status=row.get("status", "active"),  # type: ignore[arg-type]
        export_history=[
            export_record_from_dict(item)
            for item in history  # type: ignore[union-attr]
            if isinstance(item, dict)
        ],
    )
