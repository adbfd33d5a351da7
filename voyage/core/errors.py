import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for failures the presentation layer shows verbatim."""

    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDeniedError(WorkflowError):
    """Caller lacks the role or ownership relation for the requested action."""

    status_code = 403


class StateTransitionError(WorkflowError):
    """The expense's current status does not allow the requested transition."""

    status_code = 409


class ValidationError(WorkflowError):
    """Malformed or out-of-range input."""

    status_code = 400


class NotFoundError(WorkflowError):
    status_code = 404


class CompensationError(WorkflowError):
    """A secondary write failed after a primary write; needs operator attention."""

    status_code = 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def workflow_exception_handler(request: Request, exc: WorkflowError) -> JSONResponse:  # type: ignore[override]
        if isinstance(exc, CompensationError):
            logger.error("Compensated failure on %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "path": str(request.url)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "errors": jsonable_errors(exc),
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"detail": exc.detail or "HTTP error.", "path": str(request.url)}
        if exc.headers:
            payload["headers"] = exc.headers
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error.",
                "path": str(request.url),
            },
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic v2 error contexts may carry exception instances
    errors = []
    for error in exc.errors():
        entry = dict(error)
        if "ctx" in entry:
            entry["ctx"] = {key: str(value) for key, value in entry["ctx"].items()}
        entry.pop("url", None)
        errors.append(entry)
    return errors
