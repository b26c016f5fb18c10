"""Error taxonomy shared across taskpilot components."""

from __future__ import annotations


class TaskPilotError(RuntimeError):
    """Base class for errors that abort the current agent loop."""


class TransportError(TaskPilotError):
    """Raised when the remote endpoint cannot be reached or answers with an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.retryable = retryable


class AuthenticationError(TaskPilotError):
    """Raised when credentials are missing, expired or rejected. Never retried."""


class ResponseSchemaError(TaskPilotError):
    """Raised when a well-formed agent response violates the action schema."""


class PlanDriftError(TaskPilotError):
    """Raised when a plan line no longer matches the task it was parsed from."""


class UnsupportedEditError(TaskPilotError):
    """Raised when a structured editor cannot perform the requested operation."""


class ConfigurationError(ValueError):
    """Raised when configuration files or settings are invalid."""
