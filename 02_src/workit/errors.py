"""Exceptions for messaging operations."""


class WorkitError(Exception):
    """Base exception for WorkiT messaging errors."""

    pass


class ValidationError(WorkitError):
    """Raised when required ids, participants or content are missing."""

    pass


class NotFoundError(WorkitError):
    """Raised when a conversation or message does not exist."""

    pass


class AuthenticationError(WorkitError):
    """Raised when an operation needs a signed-in user and there is none."""

    pass


class RemoteUnavailable(WorkitError):
    """Raised when the remote message service cannot be reached or fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
