"""Contract between the workflow and whatever reaches the game backend."""

import asyncio
import random
import string
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, Field

from idclone.core.modules.workflow.pipeline import stage_latency
from idclone.utils import now

logger = structlog.get_logger(__name__)

# Actions the workflow performs outside of pipelines
LOGIN_ACTION = "login"
VALIDATE_SESSION_ACTION = "validate-session"
LOGOUT_ACTION = "logout"


class StageResult(BaseModel):
    """Outcome of one collaborator call: ``{ok, payload}`` or ``{ok: false, message}``."""

    ok: bool
    payload: dict[str, Any] = Field(default_factory=dict)
    message: str = ""

    @classmethod
    def success(cls, payload: dict[str, Any] | None = None) -> "StageResult":
        return cls(ok=True, payload=payload or {})

    @classmethod
    def failure(cls, message: str) -> "StageResult":
        return cls(ok=False, message=message)


class NetworkCollaborator(Protocol):
    """Anything that can perform a named action against the backend."""

    async def perform(self, action: str, params: dict[str, Any]) -> StageResult: ...


class SimulatedCollaborator:
    """Demo-mode collaborator that sleeps for each stage's latency and succeeds.

    ``failures`` maps an action name to the message it should fail with.
    ``time_scale`` multiplies every latency; tests use 0.
    """

    def __init__(
        self,
        failures: dict[str, str] | None = None,
        time_scale: float = 1.0,
        login_latency: float = 1.5,
    ) -> None:
        self.failures = dict(failures or {})
        self.time_scale = time_scale
        self.login_latency = login_latency
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._email = ""

    async def perform(self, action: str, params: dict[str, Any]) -> StageResult:
        self.calls.append((action, params))
        latency = self.login_latency if action == LOGIN_ACTION else stage_latency(action)
        await asyncio.sleep(latency * self.time_scale)

        if action in self.failures:
            logger.debug("simulated_failure", action=action)
            return StageResult.failure(self.failures[action])

        if action == LOGIN_ACTION:
            email = str(params.get("email", ""))
            self._email = email
            return StageResult.success(
                {
                    "session_handle": f"simulated_auth_token_{int(now().timestamp() * 1000)}",
                    "account": {
                        "email": email,
                        "name": email.split("@")[0] or "DemoUser",
                        "local_id": "ID_" + "".join(random.choices(string.ascii_lowercase + string.digits, k=10)),
                        "money": random.randrange(1_000_000),
                        "cars_count": random.randrange(50),
                    },
                }
            )
        if action == VALIDATE_SESSION_ACTION:
            return StageResult.success({"valid": True, "owner": {"user_id": str(params.get("user_id", "")), "email": self._email}})
        return StageResult.success()
