"""Error taxonomy shared by the identity lifecycle and the message relay."""
from __future__ import annotations


class QuickTalkError(Exception):
    """Base class for failures the transport layer translates for callers."""

    default_message = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(QuickTalkError):
    """Malformed or missing input; the caller may resubmit corrected input."""

    default_message = "Invalid request."


class ConflictError(QuickTalkError):
    """A unique attribute (handle or address) is already in use."""

    default_message = "Resource already exists."

    def __init__(self, message: str | None = None, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class AuthError(QuickTalkError):
    """Bad credential or a bad, expired or already used verification code."""

    default_message = "Authentication failed."


class ForbiddenError(QuickTalkError):
    """The account exists but is not allowed to perform the operation yet."""

    default_message = "Operation not permitted."


class NotFoundError(QuickTalkError):
    default_message = "Not found."


class ServerError(QuickTalkError):
    """A collaborator (notifier, store) failed while handling the request."""

    default_message = "Internal server error."


class VerificationDeliveryError(ServerError):
    """The account was created but its verification code could not be sent."""

    default_message = "Account created but failed to send verification email."


class StoreError(ServerError):
    default_message = "Storage is temporarily unavailable."


class NotificationError(RuntimeError):
    """Raised by notifiers when a code could not be delivered."""


class ConfigurationError(ValueError):
    """Raised when settings cannot be parsed."""


__all__ = [
    "AuthError",
    "ConfigurationError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "NotificationError",
    "QuickTalkError",
    "ServerError",
    "StoreError",
    "ValidationError",
    "VerificationDeliveryError",
]
