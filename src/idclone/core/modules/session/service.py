import asyncio
import secrets
from datetime import datetime, timedelta

import structlog

from idclone.config import Config
from idclone.core.core import Service
from idclone.core.modules.session.models import (
    INVALID_SESSION_REASON,
    Session,
    SessionHandle,
    SessionOwner,
    SessionValidation,
)
from idclone.utils import now

logger = structlog.get_logger(__name__)


class SessionService(Service):
    """In-memory registry of source account sessions with idle expiry.

    Every public operation holds one coarse lock, so create, validate,
    remove and sweep never interleave on the shared map.
    """

    def __init__(self, config: Config) -> None:
        super().__init__(config)
        self._sessions: dict[SessionHandle, Session] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None
        self.ttl = timedelta(hours=config.session_ttl_hours)
        self.sweep_interval = timedelta(minutes=config.session_sweep_interval_minutes)

    async def on_start(self) -> None:
        """Start the periodic sweep of expired sessions."""
        self._sweeper = asyncio.create_task(self._sweep_forever())
        logger.debug("session_sweeper_started", interval_seconds=self.sweep_interval.total_seconds())

    async def on_stop(self) -> None:
        """Stop the sweeper and drop every session."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        async with self._lock:
            self._sessions.clear()

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    async def create_session(self, user_id: str, email: str) -> SessionHandle:
        async with self._lock:
            handle = SessionHandle(secrets.token_urlsafe(32))
            while handle in self._sessions:
                handle = SessionHandle(secrets.token_urlsafe(32))
            self._sessions[handle] = Session(handle=handle, owner_id=user_id, owner_email=email)
        logger.info("session_created", user_id=user_id)
        return handle

    async def validate_session(self, handle: SessionHandle, at: datetime | None = None) -> SessionValidation:
        """Validate a handle and refresh its activity timestamp."""
        current = at or now()
        async with self._lock:
            session = self._sessions.get(handle)
            if session is None:
                return SessionValidation(valid=False, reason=INVALID_SESSION_REASON)
            if self._is_expired(session, current):
                # Expired between sweeps
                del self._sessions[handle]
                logger.debug("session_expired_on_validate", user_id=session.owner_id)
                return SessionValidation(valid=False, reason=INVALID_SESSION_REASON)
            session.last_activity_at = max(session.last_activity_at, current)
            return SessionValidation(valid=True, owner=SessionOwner.from_domain(session))

    async def remove_session(self, handle: SessionHandle) -> None:
        async with self._lock:
            session = self._sessions.pop(handle, None)
        if session is not None:
            logger.info("session_removed", user_id=session.owner_id)

    async def sweep_expired(self, at: datetime | None = None) -> int:
        """Remove every session idle longer than the TTL and return how many were removed."""
        current = at or now()
        async with self._lock:
            expired = [handle for handle, session in self._sessions.items() if self._is_expired(session, current)]
            for handle in expired:
                del self._sessions[handle]
        if expired:
            logger.info("sessions_swept", removed=len(expired), remaining=len(self._sessions))
        return len(expired)

    def _is_expired(self, session: Session, at: datetime) -> bool:
        return at - session.last_activity_at > self.ttl

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval.total_seconds())
            await self.sweep_expired()
