"""
Failure taxonomy for the chat core.

Every error carries a short, human-readable ``message`` that is safe to send
to a client as the payload of an ``error`` event.
"""

from typing import Optional


class ChatError(Exception):
    """Base class for failures that are reported back to one connection."""

    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    """An inbound event is missing a required field or has a malformed payload."""
    default_message = "Invalid payload"


class AuthenticationError(ChatError):
    """A credential was presented but could not be verified."""
    default_message = "Invalid token"


class NotFoundError(ChatError):
    """The targeted message does not exist."""
    default_message = "Message not found"


class StoreUnavailableError(ChatError):
    """The message store could not complete a read or write."""
    default_message = "Message store unavailable"
