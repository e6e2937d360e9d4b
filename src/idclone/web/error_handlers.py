import structlog
from fastapi import Request
from fastapi.responses import JSONResponse, Response

from idclone.errors import (
    AuthenticationError,
    BusyError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StageFailureError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# Checked in order; the first matching class wins
ERROR_STATUS: list[tuple[type[Exception], int, str]] = [
    (AuthenticationError, 401, "authentication_error"),
    (PermissionDeniedError, 403, "permission_denied"),
    (NotFoundError, 404, "not_found"),
    (ValidationError, 400, "validation_error"),
    (BusyError, 409, "busy"),
    (InvalidTransitionError, 409, "invalid_transition"),
    (StageFailureError, 502, "stage_failure"),
]


def create_json_error_response(status_code: int, message: str, error_type: str | None = None) -> JSONResponse:
    """Create JSON error response with optional type for machine parsing."""
    content = {"message": message}
    if error_type:
        content["type"] = error_type
    return JSONResponse(status_code=status_code, content=content)


async def user_error_handler(_: Request, exc: Exception) -> Response:
    """Handle all UserError subclasses with appropriate status codes."""
    status_code, error_type = 400, "bad_request"
    for error_class, code, type_name in ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code, error_type = code, type_name
            break

    return create_json_error_response(status_code=status_code, message=str(exc), error_type=error_type)


async def general_exception_handler(_: Request, exc: Exception) -> Response:
    """Handle unexpected errors (500)."""
    logger.exception("unexpected_error", error=str(exc))
    return create_json_error_response(
        status_code=500, message="An unexpected error occurred.", error_type="internal_server_error"
    )
