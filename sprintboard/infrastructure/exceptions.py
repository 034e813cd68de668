"""
Error taxonomy and global exception handling for the SprintBoard API.

Three failure classes reach the user, all normalized to one display string:
transport failures, backend-reported failures (falsy ``status`` envelope),
and client-side validation failures. Handlers turn them into structured
JSON error responses and keep stack traces away from clients.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime
from typing import Optional
import structlog

logger = structlog.get_logger(__name__)


class SprintBoardException(Exception):
    """Base exception for SprintBoard application errors."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class TrackerTransportError(SprintBoardException):
    """Network failure or non-2xx response from the remote tracker."""
    def __init__(self, message: str, http_status: Optional[int] = None, endpoint: str = ""):
        self.http_status = http_status
        self.endpoint = endpoint
        super().__init__(
            message=message,
            status_code=502,
            details={"endpoint": endpoint, "http_status": http_status},
        )


class TrackerResponseError(SprintBoardException):
    """The tracker answered with a falsy ``status`` flag."""
    def __init__(self, message: str, endpoint: str = ""):
        self.endpoint = endpoint
        super().__init__(message=message, status_code=400, details={"endpoint": endpoint})


class ValidationFailure(SprintBoardException):
    """Client-side validation rejected the input; nothing was sent."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message=message, status_code=422, details={"field": field})


class ActionInProgressError(SprintBoardException):
    """A guarded action was triggered again while still in flight."""
    def __init__(self, action: str, target: str = ""):
        self.action = action
        super().__init__(
            message=f"'{action}' is already in progress",
            status_code=409,
            details={"action": action, "target": target},
        )


class IssueNotLoadedError(SprintBoardException):
    """The issue editor has no loaded snapshot to work against."""
    def __init__(self, task_id: str):
        super().__init__(
            message=f"Issue {task_id} is not loaded",
            status_code=409,
            details={"task_id": task_id},
        )


def display_message(exc: BaseException, default: str = "Request failed.") -> str:
    """Collapse any failure into the single string shown next to a control."""
    if isinstance(exc, SprintBoardException) and exc.message:
        return exc.message
    return default


async def _sprintboard_exception_handler(request: Request, exc: SprintBoardException) -> JSONResponse:
    """Handle SprintBoard application exceptions."""
    error_id = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")

    logger.warning(
        "sprintboard_exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        message=exc.message,
        path=request.url.path,
        method=request.method,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "type": type(exc).__name__,
                "error_id": error_id,
                "details": exc.details,
                "timestamp": datetime.utcnow().isoformat(),
            }
        },
    )


async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    error_id = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")

    logger.error(
        "unhandled_exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": "Internal server error",
                "type": "InternalServerError",
                "error_id": error_id,
                "timestamp": datetime.utcnow().isoformat(),
            }
        },
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors with structured detail."""
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "type": "ValidationError",
                "details": jsonable_errors(exc),
                "timestamp": datetime.utcnow().isoformat(),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "type": "HTTPException",
                "status_code": exc.status_code,
                "timestamp": datetime.utcnow().isoformat(),
            }
        },
    )


def register_exception_handlers(app: FastAPI):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(SprintBoardException, _sprintboard_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _global_exception_handler)
    logger.info("exception_handlers_registered")
