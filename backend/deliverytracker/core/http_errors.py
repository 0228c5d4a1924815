"""Translate sync-core errors into HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from deliverytracker.core.errors import (
    InvalidTransition,
    MalformedInput,
    NotFound,
    RemoteUnavailable,
    SyncError,
    UniquenessConflict,
)

_STATUS_BY_ERROR: dict[type[SyncError], int] = {
    RemoteUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    UniquenessConflict: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFound: status.HTTP_404_NOT_FOUND,
    MalformedInput: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

RETRY_AFTER_SECONDS = "5"


def status_for(exc: SyncError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    status_code = status_for(exc)
    content: dict[str, object] = {"detail": exc.message, "error": type(exc).__name__}
    headers: dict[str, str] = {}
    if isinstance(exc, RemoteUnavailable):
        content["queued"] = exc.queued
        if exc.record is not None:
            content["record"] = exc.record
        headers["Retry-After"] = RETRY_AFTER_SECONDS
    logger.bind(
        path=str(request.url.path),
        status=status_code,
        error=type(exc).__name__,
    ).warning("sync_error")
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def init_error_handlers(app: FastAPI) -> None:
    """Attach the sync error handler to the FastAPI app."""

    app.add_exception_handler(SyncError, sync_error_handler)  # type: ignore[arg-type]
