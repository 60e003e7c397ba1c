"""Error taxonomy for the chat relay."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for failures raised by the chat pipeline."""


class InvalidRequest(ChatError, ValueError):
    """The caller supplied an incomplete or malformed chat request."""


class BackendUnavailable(ChatError):
    """The inference backend could not be reached."""


class ModelUnavailable(ChatError):
    """The backend is reachable but the configured model is not installed."""


class BackendError(ChatError):
    """The backend answered with a non-success status."""


class MalformedResponse(BackendError):
    """The backend response body could not be parsed."""


class StreamInterrupted(BackendError):
    """A streaming completion failed after it had started."""
