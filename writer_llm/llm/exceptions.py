"""
Error types for text generation.

Every failure surfaced to a caller derives from LLMError and carries:
- Provider and model context
- HTTP status and diagnostic body where one exists
- No retry hints: retrying is always the caller's decision
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class ConfigError(LLMError, ValueError):
    """Invalid or absent input detected before any I/O."""
    pass


class MissingCredentialError(LLMError):
    """The secret resolver produced no API token."""
    pass


class TransportError(LLMError):
    """Non-success HTTP status or a connection-level failure."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_text: str = "",
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)
        self.body_text = body_text


class MalformedResponseError(LLMError):
    """Success status, but the body does not have the expected shape."""
    pass


class StreamingError(LLMError):
    """Streaming-specific errors."""
    pass
