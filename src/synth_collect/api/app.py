"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from synth_collect.api.sessions import router as sessions_router
from synth_collect.api.transfer import router as transfer_router
from synth_collect.app_logging import configure_logging
from synth_collect.containers import AppContainer
from synth_collect.errors import StorageError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            app.state.container.settings.data_root.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.exception("Failed to create data root")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(sessions_router)
    app.include_router(transfer_router)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        state_container: AppContainer = request.app.state.container
        detail = "Internal Server Error"
        if state_container.settings.environment == "local":
            detail = f"{type(exc).__name__}: {exc}"
        return JSONResponse({"detail": detail}, status_code=500)

    @app.get("/health", response_model=None)
    async def health(request: Request) -> dict[str, object] | JSONResponse:
        """Report whether storage and the data root are usable."""
        state_container: AppContainer = request.app.state.container
        checks: dict[str, object] = {"storage": False, "filesystem": False}
        try:
            checks["sessions"] = len(state_container.store.list_sessions())
            checks["storage"] = True
        except StorageError:
            logger.exception("Health check could not list sessions")
        checks["filesystem"] = state_container.settings.data_root.is_dir()
        if checks["storage"] and checks["filesystem"]:
            return {"status": "ok", "checks": checks}
        return JSONResponse(
            {"status": "unhealthy", "checks": checks}, status_code=503
        )

    return app
