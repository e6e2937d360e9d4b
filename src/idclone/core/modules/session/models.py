"""Session registry models."""

from datetime import datetime
from typing import Literal, NewType

from pydantic import BaseModel, Field

from idclone.utils import now

SessionHandle = NewType("SessionHandle", str)

INVALID_SESSION_REASON = "expired-or-unknown"


class Session(BaseModel):
    """Logged-in source account session, kept in process memory only."""

    handle: str
    owner_id: str
    owner_email: str
    created_at: datetime = Field(default_factory=now)
    last_activity_at: datetime = Field(default_factory=now)


class SessionOwner(BaseModel):
    """Owner of a live session (API representation)."""

    user_id: str = Field(..., description="Operator ID the session belongs to")
    email: str = Field(..., description="Email of the source account")

    @classmethod
    def from_domain(cls, session: Session) -> "SessionOwner":
        return cls(user_id=session.owner_id, email=session.owner_email)


class SessionValidation(BaseModel):
    """Result of validating a session handle."""

    valid: bool
    owner: SessionOwner | None = None
    reason: Literal["expired-or-unknown"] | None = None
