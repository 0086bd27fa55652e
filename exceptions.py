"""
Custom exceptions for Proyecto Globo.

Provides specific exception types for better error handling and debugging.
Backend errors carry a ``kind`` used to pick the user-facing message for the
session's locale.
"""

from __future__ import annotations


class GloboError(Exception):
    """Base exception for all Proyecto Globo errors."""

    kind = "transient"


class InputInvalidError(GloboError):
    """Raised when user input is rejected before any network call."""

    kind = "input_invalid"


class EmptyInputError(InputInvalidError):
    """Raised when text to narrate is blank after trimming."""

    kind = "empty_input"

    def __init__(self, message: str = "Text cannot be empty") -> None:
        super().__init__(message)


class BackendError(GloboError):
    """Base exception for chat-completion backend failures."""

    pass


class BackendUnavailableError(BackendError):
    """Raised when the backend is unreachable or returns nothing usable."""

    kind = "transient"


class RateLimitedError(BackendError):
    """Raised when the backend rejects the request for rate limiting."""

    kind = "rate_limited"


class InvalidCredentialError(BackendError):
    """Raised when the backend rejects the configured API key."""

    kind = "invalid_credential"


class MalformedResponseError(GloboError):
    """Raised when a structured reply cannot be parsed into steps."""

    kind = "malformed"


class VisualizationError(GloboError):
    """Raised when the visualization service fails to return an image."""

    def __init__(self, query: str, reason: str) -> None:
        self.query = query
        self.reason = reason
        super().__init__(f"Visualization failed for '{query}': {reason}")


class AudioServiceError(GloboError):
    """Raised when speech synthesis or playback fails."""

    kind = "audio_service"
