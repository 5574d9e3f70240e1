"""Bundle parsing, validation and document building."""

import json
from datetime import datetime

from pydantic import ValidationError
from pydantic_core import ErrorDetails

from synth_collect.domain.bundles import EXPORT_VERSION, IMAGES_PREFIX, Bundle
from synth_collect.domain.images import ImageRecord, image_to_dict
from synth_collect.domain.sessions import SessionRecord
from synth_collect.errors import BundleDecodeError, BundleValidationError


def _format_error(error: ErrorDetails) -> str:
    location = ".".join(str(part) for part in error["loc"])
    return f"{location or 'bundle'}: {error['msg']}"


def parse_bundle(payload: object) -> Bundle:
    """Validate a decoded JSON document into a bundle.

    Every failing field is reported, not only the first one.
    """
    if not isinstance(payload, dict):
        raise BundleValidationError(["bundle: expected a JSON object"])
    try:
        return Bundle.model_validate(payload)
    except ValidationError as exc:
        errors = [_format_error(error) for error in exc.errors()]
        raise BundleValidationError(errors) from exc


def load_bundle_json(raw: bytes | str) -> Bundle:
    """Decode and validate a JSON bundle."""
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BundleDecodeError(f"Invalid JSON bundle: {exc}") from exc
    return parse_bundle(payload)


def portable_image_path(filename: str) -> str:
    """Return the archive entry path of an image."""
    return f"{IMAGES_PREFIX}{filename}"


def bundle_image(image: ImageRecord) -> dict[str, object]:
    """Serialize an image record for a bundle."""
    payload = image_to_dict(image)
    payload["file_path"] = portable_image_path(image.filename)
    return payload


def bundle_session(session: SessionRecord) -> dict[str, object]:
    """Serialize the session part of a bundle."""
    return {
        "id": str(session.id),
        "name": session.name,
        "description": session.description,
        "status": session.status,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
        "created_by": session.created_by,
        "image_count": session.image_count,
    }


def build_bundle_document(
    session: SessionRecord,
    images: list[ImageRecord],
    exported_at: datetime,
    stats: dict[str, object] | None = None,
) -> dict[str, object]:
    """Build the metadata document shared by JSON and archive exports."""
    document: dict[str, object] = {
        "session": bundle_session(session),
        "images": [bundle_image(image) for image in images],
        "export_timestamp": exported_at.isoformat(),
        "export_version": EXPORT_VERSION,
    }
    if stats is not None:
        document["export_stats"] = stats
    return document
