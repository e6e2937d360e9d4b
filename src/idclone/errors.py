from abc import ABC


class UserError(ABC, Exception):
    """Base class for user-related errors.

    All errors that inherit from UserError will have their messages
    displayed to the operator. These errors should not contain any
    sensitive information.
    """


class NotFoundError(UserError):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class AuthenticationError(UserError):
    """Raised when login or session acquisition fails."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class PermissionDeniedError(UserError):
    """Raised when the operator lacks the tier or verification for an action."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class ValidationError(UserError):
    """Raised when operator input fails validation."""


class BusyError(UserError):
    """Raised when an operation is requested while another one is in flight."""

    def __init__(self, message: str = "Another operation is in progress, please wait") -> None:
        super().__init__(message)


class InvalidTransitionError(UserError):
    """Raised when a command is not valid in the workflow's current phase."""


class StageFailureError(UserError):
    """Raised when a pipeline stage fails; the run is terminal."""

    def __init__(self, stage: str, message: str, progress_percent: int) -> None:
        super().__init__(message)
        self.stage = stage
        self.progress_percent = progress_percent
