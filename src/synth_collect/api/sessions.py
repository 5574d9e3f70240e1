"""Session and image endpoints."""

from __future__ import annotations

import json
from uuid import UUID  # noqa: TC003

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import ValidationError

from synth_collect.api.dependencies import get_container, require_user
from synth_collect.api.models import (
    CreateSessionRequest,
    ImageMetadataRequest,
    UpdateImageRequest,
    UpdateSessionRequest,
)
from synth_collect.domain.images import image_to_dict
from synth_collect.domain.sessions import session_to_dict
from synth_collect.errors import (
    ImageFileNotFoundError,
    ImageNotFoundError,
    InvalidImageError,
    SessionAccessError,
)

router = APIRouter(prefix="/api", tags=["sessions"])


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: CreateSessionRequest,
    request: Request,
    user_id: str = Depends(require_user),
) -> dict[str, object]:
    """Create a session owned by the caller."""
    container = get_container(request)
    try:
        session = container.session_service.create_session(
            user_id, payload.name, payload.description
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session_to_dict(session)


@router.get("/sessions")
async def list_sessions(
    request: Request, user_id: str = Depends(require_user)
) -> dict[str, object]:
    """Return the caller's sessions."""
    container = get_container(request)
    sessions = container.session_service.list_sessions(user_id)
    return {"sessions": [session_to_dict(session) for session in sessions]}


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: UUID, request: Request, user_id: str = Depends(require_user)
) -> dict[str, object]:
    """Return one session."""
    container = get_container(request)
    try:
        session = container.session_service.get_owned_session(session_id, user_id)
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return session_to_dict(session)


@router.patch("/sessions/{session_id}")
async def update_session(
    session_id: UUID,
    payload: UpdateSessionRequest,
    request: Request,
    user_id: str = Depends(require_user),
) -> dict[str, object]:
    """Edit session name, description or status."""
    container = get_container(request)
    changes = payload.model_dump(exclude_unset=True)
    try:
        session = await container.session_service.update_session(
            session_id, user_id, changes
        )
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return session_to_dict(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: UUID, request: Request, user_id: str = Depends(require_user)
) -> Response:
    """Delete a session with all of its images."""
    container = get_container(request)
    try:
        await container.session_service.delete_session(session_id, user_id)
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions/{session_id}/images")
async def list_images(
    session_id: UUID, request: Request, user_id: str = Depends(require_user)
) -> dict[str, object]:
    """Return the images of a session."""
    container = get_container(request)
    try:
        images = container.session_service.list_images(session_id, user_id)
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"images": [image_to_dict(image) for image in images]}


@router.post("/sessions/{session_id}/images", status_code=status.HTTP_201_CREATED)
async def upload_image(
    session_id: UUID,
    request: Request,
    file: UploadFile = File(...),
    metadata: str = Form(...),
    user_id: str = Depends(require_user),
) -> dict[str, object]:
    """Store an uploaded image with its annotation metadata."""
    container = get_container(request)
    try:
        fields = ImageMetadataRequest.model_validate(json.loads(metadata))
    except (json.JSONDecodeError, ValidationError) as exc:
        detail = f"Invalid metadata: {exc}"
        raise HTTPException(status_code=400, detail=detail) from exc
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    try:
        image = await container.session_service.add_image(
            session_id,
            user_id,
            file.filename or "upload.png",
            content,
            fields.model_dump(),
        )
    except SessionAccessError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidImageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return image_to_dict(image)


@router.patch("/images/{image_id}")
async def update_image(
    image_id: UUID,
    payload: UpdateImageRequest,
    request: Request,
    user_id: str = Depends(require_user),
) -> dict[str, object]:
    """Edit the annotation fields of an image."""
    container = get_container(request)
    changes = payload.model_dump(exclude_unset=True)
    try:
        image = await container.session_service.update_image(
            image_id, user_id, changes
        )
    except (ImageNotFoundError, SessionAccessError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return image_to_dict(image)


@router.delete("/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: UUID, request: Request, user_id: str = Depends(require_user)
) -> Response:
    """Delete an image and its file."""
    container = get_container(request)
    try:
        await container.session_service.delete_image(image_id, user_id)
    except (ImageNotFoundError, SessionAccessError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/images/{image_id}", response_model=None)
async def get_image_file(
    image_id: UUID, request: Request
) -> FileResponse | PlainTextResponse:
    """Serve an image file; no user header so ``<img>`` tags work."""
    container = get_container(request)
    try:
        served = container.image_service.open_image(image_id)
    except (ImageNotFoundError, ImageFileNotFoundError) as exc:
        return PlainTextResponse(str(exc), status_code=404)
    return FileResponse(
        served.path,
        media_type=served.media_type,
        headers={"Cache-Control": "public, max-age=3600"},
    )
