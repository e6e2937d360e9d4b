"""Operation workflow models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, SecretStr

from idclone.utils import now


class OperationType(StrEnum):
    """Mutually exclusive account operations."""

    MODIFY_ID = "modify-id"
    CLONE_TO_NEW = "clone-to-new"


class Phase(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    LOGGED_IN = "logged_in"
    OPERATION_SELECTED = "operation_selected"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.SUCCEEDED, Phase.FAILED)


class LogLevel(StrEnum):
    INFO = "info"
    STEP = "step"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=now)
    level: LogLevel = LogLevel.INFO
    message: str


class OperationState(BaseModel):
    """Mutable state of the current run, reset after every run."""

    phase: Phase = Phase.UNAUTHENTICATED
    operation_type: OperationType | None = None
    stage_index: int | None = None  # Index of the running or last reached stage
    progress_percent: int = Field(default=0, ge=0, le=100)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    is_processing: bool = False
    log: list[LogEntry] = Field(default_factory=list)


class OperationParams(BaseModel):
    """Operator input for starting an operation."""

    custom_local_id: str = ""
    target_email: str | None = None
    target_password: SecretStr | None = None


class SourceAccount(BaseModel):
    """Summary of the logged-in source account."""

    email: str
    local_id: str | None = None  # Currently displayed Local ID
    name: str | None = None
    money: int | None = None
    cars_count: int | None = None


class StatusKind(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Status(BaseModel):
    """Last operator-visible status message."""

    kind: StatusKind
    message: str


class ConfirmationRequest(BaseModel):
    """Pending destructive-action confirmation issued by ``request_start``."""

    token: str
    operation_type: OperationType
    params: OperationParams
    prompt: str


class EventKind(StrEnum):
    STATE = "state"
    LOG = "log"
    STATUS = "status"
    PROGRESS = "progress"


class WorkflowEvent(BaseModel):
    """Notification sent to workflow observers."""

    kind: EventKind
    phase: Phase
    progress_percent: int = 0
    entry: LogEntry | None = None
    status: Status | None = None
