"""Fixed stage sequences for each operation type."""

from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from idclone.core.modules.workflow.models import OperationType


class PipelineStage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str  # Action name passed to the network collaborator
    label: str  # Human-readable progress text
    target_percent: int
    latency: float = 0.0  # Seconds the simulated collaborator spends on the stage


MODIFY_ID_STAGES: tuple[PipelineStage, ...] = (
    PipelineStage(name="send-request", label="Sending modification request to server", target_percent=10, latency=1.0),
    PipelineStage(name="validate-new-id", label="Validating new Local ID", target_percent=30, latency=1.5),
    PipelineStage(name="update-account", label="Updating account data", target_percent=50, latency=2.0),
    PipelineStage(name="update-dependent-records", label="Updating vehicle data", target_percent=70, latency=1.5),
    PipelineStage(name="verify-result", label="Verifying update result", target_percent=90, latency=1.0),
    PipelineStage(name="complete", label="Modification complete", target_percent=100),
)

CLONE_TO_NEW_STAGES: tuple[PipelineStage, ...] = (
    PipelineStage(name="send-request", label="Sending clone request to server", target_percent=10, latency=1.0),
    PipelineStage(name="validate-target", label="Validating target account", target_percent=20, latency=1.5),
    PipelineStage(name="copy-account-data", label="Copying account data", target_percent=40, latency=2.0),
    PipelineStage(name="update-local-id", label="Updating Local ID", target_percent=60, latency=1.5),
    PipelineStage(name="sync-dependent-records", label="Syncing vehicle data", target_percent=80, latency=2.0),
    PipelineStage(name="complete", label="Clone complete", target_percent=100),
)

PIPELINES: MappingProxyType[OperationType, tuple[PipelineStage, ...]] = MappingProxyType(
    {
        OperationType.MODIFY_ID: MODIFY_ID_STAGES,
        OperationType.CLONE_TO_NEW: CLONE_TO_NEW_STAGES,
    }
)


def get_pipeline(operation_type: OperationType) -> tuple[PipelineStage, ...]:
    return PIPELINES[operation_type]


def stage_latency(name: str) -> float:
    """Longest configured latency of any stage with the given action name."""
    return max((stage.latency for stages in PIPELINES.values() for stage in stages if stage.name == name), default=0.0)
