# aniverse/core/errors.py
"""Error taxonomy shared by storage, the chat service and the HTTP layer."""


class ChatError(Exception):
    """Base class for errors the HTTP layer knows how to answer."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    status_code = 400


class NotFound(ChatError):
    status_code = 404


class InternalError(ChatError):
    status_code = 500


class DataIntegrityError(InternalError):
    """A stored or incoming value falls outside its allowed set (e.g. message role)."""


class StorageError(Exception):
    """Raised by a storage backend when the underlying store fails."""


class UpstreamUnavailable(Exception):
    """
    The AI provider call failed. Carries the text shown to the user in place
    of a completion; the completion client converts it into a normal reply.
    """

    def __init__(self, user_message: str, reason: str = ""):
        super().__init__(reason or user_message)
        self.user_message = user_message
        self.reason = reason
