"""Exceptions raised by the messaging core.

Every error carries a short machine ``code`` so the realtime layer can put it
on the wire next to the human-readable message.
"""

from typing import Optional


class ChatError(Exception):
    code = "chat_error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(ChatError):
    """Input rejected before anything was persisted."""

    code = "validation_error"


class AuthorizationError(ChatError):
    """Sender may not address this receiver."""

    code = "not_authorized"


class PersistenceError(ChatError):
    """The message store could not write."""

    code = "persistence_error"


class AIUnavailableError(ChatError):
    """Every configured AI model failed."""

    code = "ai_unavailable"

    def __init__(
        self, message: str, last_error: Optional[BaseException] = None
    ) -> None:
        super().__init__(message)
        self.last_error = last_error


class AINotConfiguredError(AIUnavailableError):
    """No AI model has a usable provider (missing API keys)."""

    code = "ai_not_configured"


class FriendRequestError(ChatError):
    code = "friend_request_error"

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code
