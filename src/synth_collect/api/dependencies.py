"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Header, HTTPException, Request, status

from synth_collect.config import parse_user_header

if TYPE_CHECKING:
    from synth_collect.containers import AppContainer


def get_container(request: Request) -> AppContainer:
    """Return the dependency container attached to the app."""
    return request.app.state.container


async def require_user(x_user_id: str | None = Header(default=None)) -> str:
    """Return the acting user id set by the upstream auth proxy."""
    user_id = parse_user_header(x_user_id)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )
    return user_id
