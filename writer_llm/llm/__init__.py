"""
Chat-completion client for the writing assistant.

This package provides:
- Request building with catalog defaults
- Buffered and streaming HTTP transport
- Chunk-boundary tolerant SSE decoding
- Delta accumulation with progress callbacks
"""

from __future__ import annotations

from .catalog import DEFAULT_CATALOG, ModelCatalog
from .client import ChatCompletionTransport, HttpChatTransport, TextGenerator
from .exceptions import (
    ConfigError,
    LLMError,
    MalformedResponseError,
    MissingCredentialError,
    StreamingError,
    TransportError,
)
from .models import (
    GenerationDefaults,
    GenerationOptions,
    GenerationRequest,
    MessageRole,
    ModelInfo,
    ProviderConfig,
)
from .request_builder import build_payload, build_request

__all__ = [
    "DEFAULT_CATALOG",
    # Client
    "ChatCompletionTransport",
    # Exceptions
    "ConfigError",
    # Core models
    "GenerationDefaults",
    "GenerationOptions",
    "GenerationRequest",
    "HttpChatTransport",
    "LLMError",
    "MalformedResponseError",
    "MessageRole",
    "MissingCredentialError",
    "ModelCatalog",
    "ModelInfo",
    "ProviderConfig",
    "StreamingError",
    "TextGenerator",
    "TransportError",
    "build_payload",
    "build_request",
]
