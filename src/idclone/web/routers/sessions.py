from fastapi import APIRouter
from pydantic import BaseModel, Field

from idclone.core.modules.session.models import SessionHandle, SessionValidation
from idclone.web.deps import AppDep
from idclone.web.openapi import ErrorResponse

router = APIRouter(tags=["sessions"])


class CreateSessionRequest(BaseModel):
    """Request to register a logged-in source account."""

    user_id: str = Field(..., min_length=1, description="ID of the verified operator")
    email: str = Field(..., min_length=1, description="Email of the source account")


class CreateSessionResponse(BaseModel):
    session_handle: str = Field(..., description="Opaque handle identifying the session")


class ValidateSessionRequest(BaseModel):
    session_handle: str = Field(..., description="Handle returned by session creation")


@router.post(
    "/sessions",
    summary="Create session",
    description="Register a session for a logged-in source account and return its handle.",
    operation_id="createSession",
    status_code=201,
    responses={
        201: {"description": "Session created"},
        400: {"model": ErrorResponse, "description": "Invalid request"},
    },
)
async def create_session(request: CreateSessionRequest, app: AppDep) -> CreateSessionResponse:
    handle = await app.create_session(request.user_id, request.email)
    return CreateSessionResponse(session_handle=handle)


@router.post(
    "/sessions/validate",
    summary="Validate session",
    description="Check a session handle and refresh its activity. Unknown or expired handles are reported as invalid.",
    operation_id="validateSession",
)
async def validate_session(request: ValidateSessionRequest, app: AppDep) -> SessionValidation:
    return await app.validate_session(SessionHandle(request.session_handle))


@router.delete(
    "/sessions/{session_handle}",
    summary="Remove session",
    description="Remove a session. Removing an unknown handle succeeds as well.",
    operation_id="removeSession",
    status_code=204,
)
async def remove_session(session_handle: str, app: AppDep) -> None:
    await app.remove_session(SessionHandle(session_handle))
