"""
Trencher — FastAPI Integration
================================

What:  Glue for applications that serve Trencher routes with FastAPI.
How:   ``register_exception_handlers`` turns ``TrencherError`` into JSON
       responses; ``install_trencher`` adds the request-ID and access-log
       middlewares plus those handlers; ``create_app`` is a ready-made
       factory whose lifespan configures logging and the upload folder.

Error response body:
    {
        "error": "unprocessable_entity",
        "message": "Unprocessable Entity",
        "code": 422,
        "details": {...},          # error.metadata
        "errors": [...],           # only when the error carries sub-errors
        "request_id": "a1b2c3d4"
    }

Unexpected exceptions produce a generic 500 body; the stack trace is only
logged.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from trencher import __version__
from trencher.config import settings
from trencher.exceptions import ErrorKind, TrencherError
from trencher.logger import setup_logging
from trencher.middleware.logging import RequestLoggingMiddleware
from trencher.middleware.request_id import RequestIDMiddleware, request_id_var

logger = logging.getLogger(__name__)

PUBLIC_UPLOAD_DETAILS = frozenset({"field"})


def register_exception_handlers(app: FastAPI) -> None:
    """Map ``TrencherError`` (and anything unexpected) to JSON responses."""

    @app.exception_handler(TrencherError)
    async def handle_trencher_error(request: Request, exc: TrencherError):
        rid = request_id_var.get("")
        status = exc.http_status
        if status >= 500:
            logger.error("[%s] %s %s: %s | Context: %s", rid, exc.code, exc.kind.value, exc.message, exc.metadata)
        else:
            logger.warning("[%s] %s %s: %s", rid, exc.code, exc.kind.value, exc.message)

        content = exc.to_dict()
        if exc.kind is ErrorKind.INTERNAL_SERVER:
            # Internal details stay in the log; upload failures may name the field.
            content["details"] = {
                key: value
                for key, value in exc.metadata.items()
                if exc.metadata.get("stage") == "upload" and key in PUBLIC_UPLOAD_DETAILS
            }
        content["request_id"] = rid
        return JSONResponse(status_code=status, content=content)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": ErrorKind.INTERNAL_SERVER.value,
                "message": "An unexpected error occurred.",
                "code": 500,
                "details": {},
                "request_id": rid,
            },
        )


def install_trencher(app: FastAPI) -> FastAPI:
    """
    Add Trencher's middlewares and exception handlers to an existing app.

    Middleware executes in reverse order of addition, so the request ID is
    assigned before the access log line is written.
    """
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)
    return app


def _lifespan_for(upload_folders: Iterable[str]):
    folders = list(upload_folders)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging()
        logger.info("Trencher %s starting up", __version__)
        for folder in folders:
            path = Path(folder)
            path.mkdir(parents=True, exist_ok=True)
            logger.info("Upload directory: %s", path.resolve())
        yield
        logger.info("Trencher shutting down")

    return lifespan


def create_app(
    title: str = "Trencher API",
    upload_folders: Optional[Iterable[str]] = None,
    **fastapi_kwargs,
) -> FastAPI:
    """
    Create a FastAPI app with Trencher installed.

    Args:
        title:          OpenAPI title.
        upload_folders: Folders created at startup; defaults to
                        ``settings.upload_folder``.
        fastapi_kwargs: Passed through to ``FastAPI``.

    Register resources afterwards:
        app = create_app()
        register_crud(FastAPIDispatcher(app), users)
    """
    if upload_folders is None:
        upload_folders = [settings.upload_folder]
    app = FastAPI(
        title=title,
        version=__version__,
        lifespan=_lifespan_for(upload_folders),
        **fastapi_kwargs,
    )
    return install_trencher(app)
