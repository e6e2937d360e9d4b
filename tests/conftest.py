"""Shared pytest fixtures."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from idclone.client.storage import HandleStore
from idclone.config import Config
from idclone.core.modules.operator.models import CardType, User, UserType
from idclone.core.modules.workflow.collaborator import SimulatedCollaborator, StageResult
from idclone.core.modules.workflow.engine import OperationWorkflow


class FakeClock:
    """Manually advanced clock for elapsed-time assertions."""

    def __init__(self) -> None:
        self.current = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class BlockingCollaborator(SimulatedCollaborator):
    """Simulated collaborator that holds one action until ``release`` is set."""

    def __init__(self, block_on: str, failures: dict[str, str] | None = None) -> None:
        super().__init__(failures=failures, time_scale=0)
        self.block_on = block_on
        self.release = asyncio.Event()

    async def perform(self, action: str, params: dict[str, Any]) -> StageResult:
        if action == self.block_on:
            await self.release.wait()
        return await super().perform(action, params)


@pytest.fixture
def config(tmp_path):
    """Create a config with every required setting present."""
    return Config(
        _env_file=None,
        api_key="test-api-key",
        ranking_url="http://game.test/ranking",
        game_api_base_url="http://game.test/api",
        session_server_url="http://sessions.test",
        state_dir=str(tmp_path / "state"),
    )


@pytest.fixture
def full_user():
    return User(id="op-full", username="fullcard", verified=True, card_type=CardType.FULL)


@pytest.fixture
def hour_user():
    return User(id="op-hour", username="hourcard", verified=True, card_type=CardType.HOUR)


@pytest.fixture
def admin_user():
    return User(id="op-admin", username="admin", verified=True, card_type=CardType.HOUR, user_type=UserType.ADMIN)


@pytest.fixture
def unverified_user():
    return User(id="op-new", username="newcomer", verified=False, card_type=CardType.FULL)


@pytest.fixture
def handle_store(tmp_path):
    return HandleStore(tmp_path / "client")


@pytest.fixture
def make_workflow(handle_store):
    """Factory building a workflow with instant stages and no auto reset by default."""

    def _make(user, collaborator=None, **kwargs):
        kwargs.setdefault("auto_reset_delay", None)
        return OperationWorkflow(user, collaborator or SimulatedCollaborator(time_scale=0), handle_store, **kwargs)

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def blocking_collaborator():
    """Factory for collaborators that block a given action until released."""
    return BlockingCollaborator
