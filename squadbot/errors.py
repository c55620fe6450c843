"""
Domain errors raised by the session engine.

Every error carries a message that can be shown to the invoking user as-is;
the command handlers reply with it privately.
"""


class SessionError(Exception):
    """Base class for expected, user-facing failures."""

    title = "Something went wrong!"

    def __init__(self, message: str, title: str | None = None):
        super().__init__(message)
        self.message = message
        if title:
            self.title = title


class ValidationError(SessionError):
    title = "Invalid request!"


class DuplicateSessionError(SessionError):
    title = "You already have an active LFG session!"


class NotFoundError(SessionError):
    title = "Session not found!"


class PermissionDeniedError(SessionError):
    title = "Access denied!"


class CapacityError(SessionError):
    title = "Session is full!"


class ProvisioningFailure(SessionError):
    title = "Voice channel unavailable!"


class PersistenceFailure(SessionError):
    title = "Database unavailable!"
