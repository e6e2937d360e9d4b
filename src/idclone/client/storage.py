"""Durable storage of the session handle so a restart can resume the session."""

import json
from pathlib import Path
from typing import Any

import structlog

from idclone.core.modules.session.models import SessionHandle

logger = structlog.get_logger(__name__)

HANDLE_KEY = "source_auth"


class HandleStore:
    """Key-value JSON file holding the session handle under a fixed key."""

    def __init__(self, directory: Path | str, filename: str = "storage.json") -> None:
        self.path = Path(directory) / filename

    def load(self) -> SessionHandle | None:
        handle = self._read().get(HANDLE_KEY)
        return SessionHandle(handle) if isinstance(handle, str) and handle else None

    def save(self, handle: SessionHandle) -> None:
        data = self._read()
        data[HANDLE_KEY] = handle
        self._write(data)

    def clear(self) -> None:
        data = self._read()
        if data.pop(HANDLE_KEY, None) is not None:
            self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("handle_store_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")
