"""Network collaborator backed by the session server and the game API over HTTP."""

from types import TracebackType
from typing import Any, Self

import httpx
import structlog

from idclone.config import Config
from idclone.core.modules.workflow.collaborator import (
    LOGIN_ACTION,
    LOGOUT_ACTION,
    VALIDATE_SESSION_ACTION,
    StageResult,
)

logger = structlog.get_logger(__name__)


class HttpCollaborator:
    """Routes workflow actions to their HTTP endpoints.

    - ``login``: authenticates the source account with the game API, then
      registers a session with the session server.
    - ``validate-session`` / ``logout``: session server only.
    - anything else: ``POST {game_api_base_url}/{action}`` with the API key.

    The game API answers ``{"success": true, "data": ...}`` or
    ``{"success": false, "error": ...}``; the session server answers with
    plain models and ``{"message", "type"}`` errors.
    """

    def __init__(
        self,
        session_server_url: str,
        game_api_base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._sessions = httpx.AsyncClient(base_url=session_server_url, timeout=timeout, transport=transport)
        self._game = httpx.AsyncClient(
            base_url=game_api_base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"X-API-Key": api_key},
        )

    @classmethod
    def from_config(cls, config: Config, transport: httpx.AsyncBaseTransport | None = None) -> Self:
        return cls(
            config.session_server_url,
            config.game_api_base_url,
            config.api_key,
            timeout=config.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._sessions.aclose()
        await self._game.aclose()

    async def perform(self, action: str, params: dict[str, Any]) -> StageResult:
        try:
            if action == LOGIN_ACTION:
                return await self._login(params)
            if action == VALIDATE_SESSION_ACTION:
                return await self._validate_session(params)
            if action == LOGOUT_ACTION:
                return await self._logout(params)
            return await self._game_call(action, params)
        except httpx.HTTPError as e:
            logger.warning("collaborator_request_failed", action=action, error=str(e))
            return StageResult.failure(f"Network error: {e}")

    async def _login(self, params: dict[str, Any]) -> StageResult:
        email = params["email"]
        upstream = await self._game_call("login", {"email": email, "password": params["password"]})
        if not upstream.ok:
            return upstream

        response = await self._sessions.post("/api/v1/sessions", json={"user_id": params["user_id"], "email": email})
        body = _json_body(response)
        if response.is_error or "session_handle" not in body:
            return StageResult.failure(_session_error(response, body))

        data = upstream.payload
        local_id = data.get("local_id", data.get("localID"))
        account = {
            "email": email,
            "name": data.get("name", data.get("Name")),
            "local_id": str(local_id) if local_id is not None else None,
            "money": data.get("money"),
            "cars_count": data.get("cars_count", data.get("carsCount")),
        }
        return StageResult.success({"session_handle": body["session_handle"], "account": account})

    async def _validate_session(self, params: dict[str, Any]) -> StageResult:
        response = await self._sessions.post(
            "/api/v1/sessions/validate", json={"session_handle": params["session_handle"]}
        )
        body = _json_body(response)
        if response.is_error:
            return StageResult.failure(_session_error(response, body))
        if not body.get("valid"):
            return StageResult.failure("Session expired or unknown, please log in again")
        return StageResult.success(body)

    async def _logout(self, params: dict[str, Any]) -> StageResult:
        response = await self._sessions.delete(f"/api/v1/sessions/{params['session_handle']}")
        if response.is_error:
            return StageResult.failure(_session_error(response, _json_body(response)))
        return StageResult.success()

    async def _game_call(self, action: str, params: dict[str, Any]) -> StageResult:
        response = await self._game.post(f"/{action}", json=params)
        body = _json_body(response)
        if not body:
            return StageResult.failure(f"Invalid response from server (HTTP {response.status_code})")
        if body.get("success") is True:
            data = body.get("data")
            return StageResult.success(data if isinstance(data, dict) else {"data": data})
        message = body.get("error") or body.get("message") or f"Request failed (HTTP {response.status_code})"
        logger.debug("game_api_call_failed", action=action, status_code=response.status_code)
        return StageResult.failure(str(message))


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _session_error(response: httpx.Response, body: dict[str, Any]) -> str:
    return str(body.get("message") or f"Session server error (HTTP {response.status_code})")
