from pathlib import Path

from idclone.client.http import HttpCollaborator
from idclone.client.storage import HandleStore
from idclone.config import Config
from idclone.core.modules.operator.models import User
from idclone.core.modules.workflow.collaborator import NetworkCollaborator
from idclone.core.modules.workflow.engine import OperationWorkflow


def create_workflow(config: Config, user: User, collaborator: NetworkCollaborator | None = None) -> OperationWorkflow:
    """Build a workflow for a verified operator using the configured backends."""
    return OperationWorkflow(
        user,
        collaborator or HttpCollaborator.from_config(config),
        HandleStore(Path(config.state_dir)),
        auto_reset_delay=config.auto_reset_delay_seconds,
        stage_timeout=config.stage_timeout_seconds,
    )
