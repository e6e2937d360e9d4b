import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, NoReturn, Protocol
from uuid import uuid4

import structlog

from idclone.core.modules.access.permissions import describe_tier, ensure_operation_allowed, ensure_verified
from idclone.core.modules.operator.models import User
from idclone.core.modules.session.models import SessionHandle
from idclone.core.modules.workflow.collaborator import (
    LOGIN_ACTION,
    LOGOUT_ACTION,
    VALIDATE_SESSION_ACTION,
    NetworkCollaborator,
    StageResult,
)
from idclone.core.modules.workflow.models import (
    ConfirmationRequest,
    EventKind,
    LogEntry,
    LogLevel,
    OperationParams,
    OperationState,
    OperationType,
    Phase,
    SourceAccount,
    Status,
    StatusKind,
    WorkflowEvent,
)
from idclone.core.modules.workflow.pipeline import PipelineStage, get_pipeline
from idclone.errors import (
    AuthenticationError,
    BusyError,
    InvalidTransitionError,
    StageFailureError,
    UserError,
    ValidationError,
)
from idclone.utils import is_email, now

logger = structlog.get_logger(__name__)

Listener = Callable[[WorkflowEvent], None]
Confirm = Callable[[str], bool | Awaitable[bool]]

OPERATION_TITLES = {
    OperationType.MODIFY_ID: "Local ID modification",
    OperationType.CLONE_TO_NEW: "Account clone",
}


class HandleStorage(Protocol):
    """Durable client-side storage of the session handle."""

    def load(self) -> SessionHandle | None: ...

    def save(self, handle: SessionHandle) -> None: ...

    def clear(self) -> None: ...


class _Run:
    """Identity of one pipeline run; a logout detaches it from the workflow."""

    def __init__(self, operation_type: OperationType, params: OperationParams) -> None:
        self.operation_type = operation_type
        self.params = params


class OperationWorkflow:
    """Client-side state machine driving the modify-id and clone-to-new operations.

    Phases move ``unauthenticated -> logged_in -> operation_selected -> running
    -> succeeded | failed``; ``reset()`` brings a terminal run back to
    ``logged_in`` and ``logout()`` returns to ``unauthenticated`` from anywhere.

    At most one pipeline runs at a time. The busy guard is checked before the
    first ``await`` of every command, so checking idle and marking busy cannot
    be separated by another coroutine.
    """

    def __init__(
        self,
        user: User,
        collaborator: NetworkCollaborator,
        storage: HandleStorage | None = None,
        *,
        auto_reset_delay: float | None = 3.0,
        stage_timeout: float | None = None,
        clock: Callable[[], datetime] = now,
    ) -> None:
        self.user = user
        self.session_handle: SessionHandle | None = None
        self.account: SourceAccount | None = None
        self.params: OperationParams | None = None
        self.state = OperationState()
        self.status: Status | None = None
        self._collaborator = collaborator
        self._storage = storage
        self._auto_reset_delay = auto_reset_delay
        self._stage_timeout = stage_timeout
        self._clock = clock
        self._listeners: list[Listener] = []
        self._pending: ConfirmationRequest | None = None
        self._run: _Run | None = None
        self._detached: _Run | None = None  # Run cut off by logout whose stage is still in flight
        self._generation = 0  # Bumped by logout; session acquisition started earlier is dropped
        self._auto_reset: asyncio.TimerHandle | None = None

    async def __aenter__(self) -> "OperationWorkflow":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel the pending auto reset and close the collaborator's connections."""
        self._cancel_auto_reset()
        close = getattr(self._collaborator, "aclose", None)
        if close is not None:
            await close()

    # === Observers ===
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for workflow events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # === Session ===
    async def login(self, email: str, password: str) -> SourceAccount:
        """Log in to the source account and acquire a session handle."""
        try:
            ensure_verified(self.user)
        except UserError as e:
            raise self._reject(e) from None
        if self._is_busy():
            raise self._reject(BusyError(), record=False)
        if self.session_handle is not None:
            raise self._reject(InvalidTransitionError("Already logged in, log out first"))

        email = email.strip()
        if not email or not password:
            raise self._reject(ValidationError("Enter the email and password of the source account"))
        if not is_email(email):
            raise self._reject(ValidationError("Enter a valid email address"))

        generation = self._generation
        state = self.state
        state.is_processing = True
        self._set_status(StatusKind.INFO, "Connecting to server...")
        self._log(LogLevel.INFO, "Logging in to the source account...")
        try:
            result = await self._call(LOGIN_ACTION, {"user_id": self.user.id, "email": email, "password": password})
        finally:
            state.is_processing = False

        handle = result.payload.get("session_handle") if result.ok else None
        if generation != self._generation:
            await self._drop_orphaned_session(handle)
            raise AuthenticationError("Logged out before the login completed")
        if not handle:
            message = result.message or "Login failed: no session handle returned"
            raise self._reject(AuthenticationError(message))

        account_data = result.payload.get("account") or {}
        account = SourceAccount.model_validate({"email": email, **account_data})
        self._enter_session(SessionHandle(str(handle)), account)
        self._set_status(StatusKind.SUCCESS, "Login successful")
        self._log(LogLevel.SUCCESS, "Source account logged in")
        self._log(LogLevel.INFO, describe_tier(self.user))
        logger.info("source_account_logged_in", user_id=self.user.id)
        return account

    async def resume(self) -> SourceAccount:
        """Resume the session whose handle was saved by a previous login."""
        try:
            ensure_verified(self.user)
        except UserError as e:
            raise self._reject(e) from None
        if self.session_handle is not None:
            raise self._reject(InvalidTransitionError("Already logged in, log out first"))

        handle = self._storage.load() if self._storage is not None else None
        if handle is None:
            raise self._reject(AuthenticationError("No saved session to resume"))

        generation = self._generation
        self._set_status(StatusKind.INFO, "Previous session found, validating...")
        result = await self._call(VALIDATE_SESSION_ACTION, {"session_handle": handle, "user_id": self.user.id})
        if generation != self._generation:
            raise AuthenticationError("Logged out before the session was validated")

        owner = result.payload.get("owner") or {}
        message = None
        if not result.ok or not result.payload.get("valid", True):
            message = result.message or "Session expired, please log in again"
        elif owner.get("user_id") not in (None, self.user.id):
            message = "Saved session belongs to another operator, please log in again"
        if message is not None:
            if self._storage is not None:
                self._storage.clear()
            raise self._reject(AuthenticationError(message))

        account = SourceAccount(email=str(owner.get("email", "")), local_id=owner.get("local_id"))
        self._enter_session(handle, account)
        self._set_status(StatusKind.SUCCESS, "Session validated")
        self._log(LogLevel.SUCCESS, "Session validated")
        logger.info("source_session_resumed", user_id=self.user.id)
        return account

    async def logout(self) -> None:
        """Leave the source account from any phase. Safe to call repeatedly."""
        self._cancel_auto_reset()
        handle = self.session_handle
        self._generation += 1
        if self._run is not None:
            self._detached = self._run
        self._run = None
        self._pending = None
        self.session_handle = None
        self.account = None
        self.params = None
        self.state = OperationState()
        if self._storage is not None:
            self._storage.clear()

        if handle is not None:
            result = await self._call(LOGOUT_ACTION, {"session_handle": handle})
            if not result.ok:
                logger.warning("session_logout_failed", message=result.message)
            logger.info("source_account_logged_out", user_id=self.user.id)

        self._set_status(StatusKind.INFO, "Logged out of the source account")
        self._log(LogLevel.INFO, "Logged out of the source account")
        self._emit(EventKind.STATE)

    # === Operation selection ===
    def select_operation(self, operation_type: OperationType) -> None:
        if self.state.is_processing:
            raise self._reject(BusyError(), record=False)
        self._ensure_logged_in()
        if self.state.phase.is_terminal:
            raise self._reject(InvalidTransitionError("Reset the workflow before selecting a new operation"))
        try:
            ensure_operation_allowed(self.user, operation_type)
        except UserError as e:
            raise self._reject(e) from None

        self._pending = None
        self.state.phase = Phase.OPERATION_SELECTED
        self.state.operation_type = operation_type
        self._emit(EventKind.STATE)

    def request_start(self, params: OperationParams) -> ConfirmationRequest:
        """Validate the input and issue the destructive-action confirmation."""
        if self._is_busy():
            raise self._reject(BusyError(), record=False)
        self._ensure_logged_in()
        operation_type = self.state.operation_type
        if self.state.phase != Phase.OPERATION_SELECTED or operation_type is None:
            raise self._reject(InvalidTransitionError("Select an operation first"))
        try:
            ensure_operation_allowed(self.user, operation_type)
            params = self._validate_params(operation_type, params)
        except UserError as e:
            raise self._reject(e) from None

        self._pending = ConfirmationRequest(
            token=uuid4().hex,
            operation_type=operation_type,
            params=params,
            prompt=self._confirmation_prompt(operation_type, params),
        )
        return self._pending

    def decline_start(self, token: str) -> None:
        """Operator declined the confirmation; nothing runs."""
        self._take_pending(token)
        self._set_status(StatusKind.INFO, "Operation cancelled")
        self._log(LogLevel.WARNING, "Operation cancelled by operator")

    async def confirm_start(self, token: str) -> OperationState:
        """Run the confirmed operation to completion.

        Raises StageFailureError once the run has reached the failed phase.
        """
        if self._is_busy():
            raise self._reject(BusyError(), record=False)
        request = self._take_pending(token)

        run = _Run(request.operation_type, request.params)
        self._run = run
        self.params = request.params
        self.state.phase = Phase.RUNNING
        self.state.is_processing = True
        self.state.started_at = self._clock()
        self.state.finished_at = None
        self.state.progress_percent = 0
        self.state.stage_index = None
        self.state.log = []
        self._emit(EventKind.STATE)
        self._log(LogLevel.INFO, f"Starting {OPERATION_TITLES[run.operation_type].lower()}...")
        self._log(LogLevel.INFO, f"New Local ID: {run.params.custom_local_id}")
        logger.info("operation_started", operation_type=run.operation_type, user_id=self.user.id)

        try:
            return await self._execute(run)
        finally:
            if self._run is run:
                self._run = None
                self.state.is_processing = False
            elif self._detached is run:
                self._detached = None

    async def start(self, params: OperationParams, confirm: Confirm) -> OperationState | None:
        """Request, confirm and run in one call; returns None when the operator declines."""
        request = self.request_start(params)
        accepted = confirm(request.prompt)
        if inspect.isawaitable(accepted):
            accepted = await accepted
        if not accepted:
            self.decline_start(request.token)
            return None
        return await self.confirm_start(request.token)

    def reset(self) -> None:
        """Clear the run state; a logged-in workflow stays logged in."""
        if self.state.is_processing:
            raise self._reject(BusyError(), record=False)
        self._cancel_auto_reset()
        self._pending = None
        self.params = None
        self.state = OperationState(phase=Phase.LOGGED_IN if self.session_handle else Phase.UNAUTHENTICATED)
        self.status = None
        self._emit(EventKind.STATE)

    # === Timing ===
    def elapsed_seconds(self) -> int | None:
        if self.state.started_at is None:
            return None
        end = self._clock() if self.state.is_processing else self.state.finished_at
        if end is None:
            return None
        return int((end - self.state.started_at).total_seconds())

    def elapsed_readout(self) -> str:
        """Live elapsed time while running, frozen with the outcome afterwards."""
        seconds = self.elapsed_seconds()
        if seconds is None:
            return "--"
        minutes, seconds = divmod(seconds, 60)
        if self.state.is_processing:
            return f"Elapsed: {minutes}m {seconds}s"
        label = "completed" if self.state.phase == Phase.SUCCEEDED else "interrupted"
        return f"{label.capitalize()} in {minutes}m {seconds}s"

    # === Pipeline ===
    async def _execute(self, run: _Run) -> OperationState:
        stage_params = self._stage_params(run)
        stages = get_pipeline(run.operation_type)

        for index, stage in enumerate(stages):
            self.state.stage_index = index
            self._log(LogLevel.STEP, f"{index + 1}. {stage.label}...")
            result = await self._perform_stage(stage, stage_params)
            if self._run is not run:
                # Logged out while the stage was in flight
                raise StageFailureError(stage.name, "Session ended during the operation", self.state.progress_percent)
            if not result.ok:
                self._finish_failure(run, stage, result.message)
            self.state.progress_percent = stage.target_percent
            self._emit(EventKind.PROGRESS)

        self._finish_success(run)
        return self.state

    async def _perform_stage(self, stage: PipelineStage, params: dict[str, Any]) -> StageResult:
        if self._stage_timeout is None:
            return await self._call(stage.name, params)
        try:
            async with asyncio.timeout(self._stage_timeout):
                return await self._call(stage.name, params)
        except TimeoutError:
            return StageResult.failure(f"Stage '{stage.label}' timed out after {self._stage_timeout:g} seconds")

    def _finish_success(self, run: _Run) -> None:
        self.state.phase = Phase.SUCCEEDED
        self.state.finished_at = self._clock()
        self.state.is_processing = False
        elapsed = self.elapsed_seconds() or 0
        title = OPERATION_TITLES[run.operation_type]
        new_local_id = run.params.custom_local_id

        self._log(LogLevel.SUCCESS, f"{title} succeeded")
        if run.operation_type == OperationType.MODIFY_ID and self.account is not None:
            self._log(LogLevel.INFO, f"Old Local ID: {self.account.local_id or '--'}")
            self.account.local_id = new_local_id
        else:
            self._log(LogLevel.INFO, f"Target account: {run.params.target_email}")
        self._log(LogLevel.INFO, f"New Local ID: {new_local_id}")
        self._log(LogLevel.INFO, f"Total time: {elapsed} seconds")
        self._set_status(StatusKind.SUCCESS, f"{title} succeeded in {elapsed} seconds")
        logger.info("operation_succeeded", operation_type=run.operation_type, elapsed_seconds=elapsed)

        # Entered credentials and the new ID are not kept once the run is over
        self.params = None
        self._schedule_auto_reset()
        self._emit(EventKind.STATE)

    def _finish_failure(self, run: _Run, stage: PipelineStage, message: str) -> NoReturn:
        self.state.phase = Phase.FAILED
        self.state.finished_at = self._clock()
        self.state.is_processing = False
        title = OPERATION_TITLES[run.operation_type]

        self._log(LogLevel.ERROR, f"Error: {message}")
        self._set_status(StatusKind.ERROR, f"{title} failed: {message}")
        self._emit(EventKind.STATE)
        logger.warning(
            "stage_failed",
            operation_type=run.operation_type,
            stage=stage.name,
            progress_percent=self.state.progress_percent,
            message=message,
        )
        raise StageFailureError(stage.name, message, self.state.progress_percent)

    def _stage_params(self, run: _Run) -> dict[str, Any]:
        params: dict[str, Any] = {
            "session_handle": self.session_handle,
            "operation_type": str(run.operation_type),
            "custom_local_id": run.params.custom_local_id,
            "current_local_id": self.account.local_id if self.account else None,
        }
        if run.operation_type == OperationType.CLONE_TO_NEW:
            params["target_email"] = run.params.target_email
            password = run.params.target_password
            params["target_password"] = password.get_secret_value() if password else None
        return params

    # === Auto reset ===
    def _schedule_auto_reset(self) -> None:
        if self._auto_reset_delay is None:
            return
        self._log(LogLevel.INFO, f"Resetting in {self._auto_reset_delay:g} seconds...")
        loop = asyncio.get_running_loop()
        self._auto_reset = loop.call_later(self._auto_reset_delay, self._auto_reset_fired)

    def _auto_reset_fired(self) -> None:
        self._auto_reset = None
        if self.state.phase.is_terminal and not self.state.is_processing:
            self.reset()

    def _cancel_auto_reset(self) -> None:
        if self._auto_reset is not None:
            self._auto_reset.cancel()
            self._auto_reset = None

    # === Helpers ===
    async def _call(self, action: str, params: dict[str, Any]) -> StageResult:
        """Invoke the collaborator; unexpected exceptions become failed results."""
        try:
            return await self._collaborator.perform(action, params)
        except Exception as e:
            logger.exception("collaborator_error", action=action)
            return StageResult.failure(str(e) or type(e).__name__)

    def _is_busy(self) -> bool:
        return self.state.is_processing or self._detached is not None

    async def _drop_orphaned_session(self, handle: Any) -> None:
        """Release a session acquired after the operator had already logged out."""
        if not handle:
            return
        result = await self._call(LOGOUT_ACTION, {"session_handle": str(handle)})
        if not result.ok:
            logger.warning("session_logout_failed", message=result.message)
        logger.info("orphaned_session_dropped", user_id=self.user.id)

    def _enter_session(self, handle: SessionHandle, account: SourceAccount) -> None:
        self.session_handle = handle
        self.account = account
        if self._storage is not None:
            self._storage.save(handle)
        self.state = OperationState(phase=Phase.LOGGED_IN)
        self._emit(EventKind.STATE)

    def _ensure_logged_in(self) -> None:
        if self.session_handle is None:
            raise self._reject(AuthenticationError("Log in to the source account first"))

    def _take_pending(self, token: str) -> ConfirmationRequest:
        pending = self._pending
        if pending is None or pending.token != token:
            raise self._reject(InvalidTransitionError("No matching confirmation is pending"))
        self._pending = None
        return pending

    @staticmethod
    def _validate_params(operation_type: OperationType, params: OperationParams) -> OperationParams:
        custom_local_id = params.custom_local_id.strip()
        if not custom_local_id:
            raise ValidationError("Enter a custom Local ID")
        if operation_type == OperationType.MODIFY_ID:
            return OperationParams(custom_local_id=custom_local_id)

        target_email = (params.target_email or "").strip()
        if not target_email or params.target_password is None or not params.target_password.get_secret_value():
            raise ValidationError("Enter the target account credentials")
        if not is_email(target_email):
            raise ValidationError("Enter a valid target email address")
        return OperationParams(
            custom_local_id=custom_local_id, target_email=target_email, target_password=params.target_password
        )

    def _confirmation_prompt(self, operation_type: OperationType, params: OperationParams) -> str:
        if operation_type == OperationType.MODIFY_ID:
            current = self.account.local_id if self.account and self.account.local_id else "--"
            return (
                "Change the Local ID of the current account?\n\n"
                f"Current Local ID: {current}\n"
                f"New Local ID: {params.custom_local_id}\n\n"
                "All vehicle records referencing the Local ID will be updated."
            )
        cars = money = "--"
        if self.account is not None:
            if self.account.cars_count is not None:
                cars = str(self.account.cars_count)
            if self.account.money is not None:
                money = f"{self.account.money:,} G"
        return (
            "Warning: this completely overwrites all data of the target account!\n\n"
            f"Target account: {params.target_email}\n"
            f"New Local ID: {params.custom_local_id}\n\n"
            f"Source account cars: {cars}\n"
            f"Source account money: {money}\n\n"
            "Do you want to continue?"
        )

    def _reject(self, error: UserError, *, record: bool = True) -> UserError:
        """Report a rejected command to the operator and return the error to raise.

        With ``record=False`` the log entry is only sent to observers and the
        run state stays untouched.
        """
        self._set_status(StatusKind.ERROR, str(error))
        self._log(LogLevel.ERROR, str(error), record=record)
        logger.info("workflow_command_rejected", error_type=type(error).__name__, message=str(error))
        return error

    def _set_status(self, kind: StatusKind, message: str) -> None:
        self.status = Status(kind=kind, message=message)
        self._emit(EventKind.STATUS, status=self.status)

    def _log(self, level: LogLevel, message: str, *, record: bool = True) -> None:
        entry = LogEntry(timestamp=self._clock(), level=level, message=message)
        if record:
            self.state.log.append(entry)
        logger.debug("workflow_log", level=level, message=message)
        self._emit(EventKind.LOG, entry=entry)

    def _emit(self, kind: EventKind, entry: LogEntry | None = None, status: Status | None = None) -> None:
        event = WorkflowEvent(
            kind=kind,
            phase=self.state.phase,
            progress_percent=self.state.progress_percent,
            entry=entry,
            status=status,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("workflow_listener_failed", kind=kind)
