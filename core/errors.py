"""Exception hierarchy shared by the planner core and the HTTP layer."""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for expected planner failures."""


class SessionNotFoundError(PlannerError, LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class ActualSessionLockedError(PlannerError):
    """A completed (imported) session cannot be deleted or rescheduled."""

    def __init__(self, session_id: str, action: str):
        super().__init__(f"Session {session_id} is a completed activity and cannot be {action}")
        self.session_id = session_id
        self.action = action


class PlannedSessionLockedError(PlannerError):
    """The requested edit only applies to completed sessions."""

    def __init__(self, session_id: str, action: str):
        super().__init__(f"Session {session_id} is planned; {action} only applies to completed activities")
        self.session_id = session_id
        self.action = action


class BulkImportError(PlannerError, ValueError):
    """The import document could not be parsed or validated."""

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = details or []


class IntegrationError(PlannerError):
    """Base class for third-party service failures."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class NotConnectedError(IntegrationError):
    def __init__(self, provider: str):
        super().__init__(provider, f"Not connected to {provider}")


class AuthError(IntegrationError):
    """Token expired, revoked or refresh failed: tokens were cleared."""


class ProviderError(IntegrationError):
    """Transient provider failure (network error, 5xx, unexpected payload)."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(provider, message)
        self.status_code = status_code
