"""
TWAP Errors

Domain exceptions raised by the session store, lifecycle manager and
scheduler. The HTTP layer maps each one to a status code; none of them
carry secrets in their message.
"""

from __future__ import annotations

from typing import Optional

from .models import SessionStatus


class TWAPError(Exception):
    """Base class for TWAP engine errors."""


class ValidationError(TWAPError):
    """User-supplied input failed validation. Message is safe to return."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SessionNotFoundError(TWAPError):
    """No session with the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Session not found")


class OwnershipError(TWAPError):
    """Caller's claimed address does not own the session."""

    def __init__(self) -> None:
        super().__init__("Unauthorized")


class DuplicateSessionError(TWAPError):
    """A session with this id already exists in the store."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} already exists")


class InvalidTransitionError(TWAPError):
    """Raised when a session status transition is not allowed."""

    def __init__(
        self,
        from_status: SessionStatus,
        to_status: SessionStatus,
        message: Optional[str] = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.message = message or f"Cannot transition from {from_status.value} to {to_status.value}"
        super().__init__(self.message)


class ConfigurationError(TWAPError):
    """Required configuration is missing or invalid."""


class ExecutorNotConfiguredError(ConfigurationError):
    """Executor wallet key is missing or unusable."""

    def __init__(self, message: str = "Executor wallet not configured"):
        super().__init__(message)


class SchedulerRateLimitedError(TWAPError):
    """Scheduler was triggered again before the minimum spacing elapsed."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited, retry after {retry_after_seconds}s")
