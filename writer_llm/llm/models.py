"""
Core generation dataclasses.

This module provides the foundational types for one generation call:
- Provider configuration (endpoint, role mapping)
- Caller options and the immutable request built from them
- Model catalog entries
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ModelInfo:
    """Catalog entry shown in model selection."""
    id: str
    name: str


class GenerationOptions(BaseModel):
    """Caller-supplied options; anything left as None takes the default."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0, strict=True)
    max_tokens: int | None = Field(default=None, gt=0, strict=True)
    stream: bool | None = None


@dataclass(frozen=True)
class GenerationDefaults:
    """Values applied to options the caller leaves unspecified."""
    model: str
    temperature: float = 0.7
    max_tokens: int = 64000
    stream: bool = False


@dataclass(frozen=True)
class GenerationRequest:
    """One fully-resolved generation call. Built fresh per call."""
    prompt_text: str
    model: str
    temperature: float
    max_tokens: int
    streaming: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    """Provider endpoint and wire-format settings."""
    name: str
    base_url: str
    endpoint: str = "/chat/completions"
    api_key_env: str = "GEMINI_API_KEY"

    # Role mapping for the outgoing messages array
    prompt_role: MessageRole = MessageRole.SYSTEM
    placeholder_role: MessageRole | None = MessageRole.USER
    placeholder_content: str = "none"

    # Connection settings; None means no deadline
    timeout: float | None = None
    max_connections: int = 100
    max_keepalive: int = 20

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.endpoint.lstrip("/")
