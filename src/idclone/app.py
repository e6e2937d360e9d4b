from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from idclone.config import Config
from idclone.core.core import Core
from idclone.core.modules.session.models import SessionHandle, SessionValidation
from idclone.errors import ValidationError
from idclone.utils import is_email


class App:
    """Facade for all server operations, validates input before delegating to Core."""

    def __init__(self, config: Config) -> None:
        self._core = Core(config)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    async def create_session(self, user_id: str, email: str) -> SessionHandle:
        """Register a session for a logged-in source account."""
        if not user_id.strip():
            raise ValidationError("User ID is required")
        if not is_email(email):
            raise ValidationError("Enter a valid email address")
        return await self._core.services.session.create_session(user_id, email)

    async def validate_session(self, handle: SessionHandle) -> SessionValidation:
        """Validate a session handle and refresh its activity."""
        return await self._core.services.session.validate_session(handle)

    async def remove_session(self, handle: SessionHandle) -> None:
        """Remove a session; unknown handles are ignored."""
        await self._core.services.session.remove_session(handle)

    def get_active_session_count(self) -> int:
        return self._core.services.session.active_count
