"""HTTP entry point: app factory, editor lifecycle and error mapping."""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from canvaspipe import __version__
from canvaspipe.api.routes import router
from canvaspipe.editor import MediaEditor
from canvaspipe.errors import StepReentryError
from canvaspipe.services.replicate_client import close_replicate_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the editor for the life of the process unless one was injected."""
    logger.info("Starting Canvas Pipe API...")
    owns_editor = getattr(app.state, "editor", None) is None
    if owns_editor:
        app.state.editor = await MediaEditor.create()
    logger.info("Canvas Pipe API ready")

    yield

    logger.info("Shutting down Canvas Pipe API...")
    if owns_editor:
        await app.state.editor.close()
    await close_replicate_client()
    logger.info("Canvas Pipe API stopped")


def create_app(editor: Optional[MediaEditor] = None) -> FastAPI:
    """Build the application, optionally around an already wired editor."""
    app = FastAPI(
        title="Canvas Pipe API",
        version=__version__,
        lifespan=lifespan,
    )
    if editor is not None:
        app.state.editor = editor

    # editor UI dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(StepReentryError)
    async def step_reentry_handler(request: Request, exc: StepReentryError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": str(exc),
            }
        )

    return app


app = create_app()
