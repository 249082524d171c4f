"""Custom exceptions for chatworkspace."""

from __future__ import annotations


class ChatWorkspaceError(Exception):
    """Base class for all chatworkspace errors."""


class NoMessagesFoundError(ChatWorkspaceError):
    """Raised when pasted markup contains no recognizable conversation turns."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "No messages found in the HTML. "
            "Make sure you copied the correct HTML from ChatGPT."
        )


class MalformedIdentityError(ChatWorkspaceError, ValueError):
    """Raised when a conversation identity token fails the format check."""

    def __init__(self, token: object):
        self.token = token
        super().__init__(f"Invalid conversation ID format: {token!r}")


class StorageCorruptError(ChatWorkspaceError):
    """A stored facet could not be parsed.

    Never raised by AnnotationStore.load(); carried in a LoadResult so callers
    can tell a recovered corruption from a legitimately empty facet.
    """

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt value stored under {key}: {reason}")


class RemoteError(ChatWorkspaceError):
    """The remote blob store could not complete a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(RemoteError):
    """No shared document exists for the requested identity."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Shared chat not found: {conversation_id}", status_code=404)


class RemoteWriteError(RemoteError):
    """Publishing a shared document failed."""
