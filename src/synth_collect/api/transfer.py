"""Export, export progress and import endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from synth_collect.api.dependencies import get_container, require_user
from synth_collect.api.models import ExportRequest
from synth_collect.domain.transfer import ImportOptions
from synth_collect.errors import NoImagesToExportError, SessionAccessError
from synth_collect.services.exports import EXPORT_MODES
from synth_collect.services.progress import progress_key

if TYPE_CHECKING:
    from synth_collect.containers import AppContainer

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transfer"])

_IMPORT_EXTENSIONS = (".json", ".zip")


def attachment_headers(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def archive_headers(filename: str) -> dict[str, str]:
    """Headers for a streamed archive download."""
    return {
        **attachment_headers(filename),
        "Cache-Control": "no-cache, no-store, must-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
        "X-Content-Type-Options": "nosniff",
    }


def _sse(payload: dict[str, object]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.post("/sessions/{session_id}/export", response_model=None)
async def export_session(
    session_id: UUID,
    payload: ExportRequest,
    request: Request,
    user_id: str = Depends(require_user),
) -> JSONResponse | StreamingResponse:
    """Export a session as a JSON document or a streamed ZIP bundle."""
    container = get_container(request)
    if payload.mode not in EXPORT_MODES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid export mode: {payload.mode}",
        )
    service = container.export_service
    try:
        if payload.mode == "json":
            export = service.export_json(session_id, user_id)
            return JSONResponse(
                export.document, headers=attachment_headers(export.filename)
            )
        container.progress_store.sweep(
            container.settings.progress_max_age_seconds,
            container.settings.progress_stream_max_seconds,
        )
        job = await service.prepare_full_export(session_id, user_id)
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except NoImagesToExportError as exc:
        raise HTTPException(
            status_code=422,
            detail={"error": str(exc), "warnings": exc.warnings},
        ) from exc
    _logger.info(
        "Streaming export of session %s: %d files", session_id, len(job.valid_files)
    )
    return StreamingResponse(
        service.stream_archive(job, is_cancelled=request.is_disconnected),
        media_type="application/zip",
        headers=archive_headers(job.filename),
    )


async def _progress_events(
    request: Request, container: AppContainer, session_id: UUID, key: str
) -> AsyncIterator[str]:
    settings = container.settings
    started = time.monotonic()
    yield _sse(
        {"type": "connected", "sessionId": str(session_id), "timestamp": time.time()}
    )
    while time.monotonic() - started < settings.progress_stream_max_seconds:
        if await request.is_disconnected():
            return
        progress = container.progress_store.get(key)
        if progress is not None:
            yield _sse(
                {"type": "progress", **progress.to_wire(), "timestamp": time.time()}
            )
            if progress.is_terminal:
                await asyncio.sleep(settings.progress_grace_seconds)
                container.progress_store.delete(key)
                return
        await asyncio.sleep(settings.progress_poll_interval_seconds)


@router.get("/sessions/{session_id}/export-progress")
async def export_progress_stream(
    session_id: UUID, request: Request, user_id: str = Depends(require_user)
) -> StreamingResponse:
    """Stream export progress as server-sent events."""
    container = get_container(request)
    try:
        container.session_service.get_owned_session(session_id, user_id)
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    key = progress_key(session_id, user_id)
    return StreamingResponse(
        _progress_events(request, container, session_id, key),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/sessions/{session_id}/export-progress/snapshot")
async def export_progress_snapshot(
    session_id: UUID, request: Request, user_id: str = Depends(require_user)
) -> dict[str, object]:
    """Return the latest export progress without streaming."""
    container = get_container(request)
    try:
        container.session_service.get_owned_session(session_id, user_id)
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    progress = container.progress_store.get(progress_key(session_id, user_id))
    if progress is None:
        raise HTTPException(status_code=404, detail="No export in progress")
    return progress.to_wire()


@router.post("/import")
async def import_bundle(
    request: Request,
    file: UploadFile = File(...),
    options: str = Form(...),
    user_id: str = Depends(require_user),
) -> JSONResponse:
    """Import a JSON or ZIP bundle into a new or existing session."""
    container = get_container(request)
    filename = file.filename or ""
    if not filename.lower().endswith(_IMPORT_EXTENSIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported file type. Upload a .json or .zip export.",
        )
    try:
        import_options = ImportOptions.model_validate_json(options)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid import options: {exc}",
        ) from exc
    content = await file.read()
    result = await container.import_service.import_bundle(
        filename, content, import_options, user_id
    )
    return JSONResponse(
        result.to_response(),
        status_code=200 if result.success else 400,
    )
