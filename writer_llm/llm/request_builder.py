"""
Request assembly: caller prompt + options -> GenerationRequest -> JSON payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .catalog import DEFAULT_CATALOG
from .exceptions import ConfigError
from .models import (
    GenerationDefaults,
    GenerationOptions,
    GenerationRequest,
    ProviderConfig,
)

DEFAULT_GENERATION = GenerationDefaults(model=DEFAULT_CATALOG.default_model)


def _coerce_options(
    options: GenerationOptions | Mapping[str, Any] | None,
) -> GenerationOptions:
    if options is None:
        return GenerationOptions()
    if isinstance(options, GenerationOptions):
        return options
    try:
        return GenerationOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigError(f"Invalid generation options: {e}") from e


def build_request(
    prompt_text: str,
    options: GenerationOptions | Mapping[str, Any] | None = None,
    defaults: GenerationDefaults | None = None,
) -> GenerationRequest:
    """
    Resolve caller options against defaults into an immutable request.

    Args:
        prompt_text: Prompt to send. Must contain non-whitespace text; it is
            stored untrimmed.
        options: Partial options; unspecified fields take the defaults.
        defaults: Defaults to apply (catalog default model, 0.7, 64000, False
            when omitted).

    Raises:
        ConfigError: Empty prompt or out-of-range options.
    """
    if not isinstance(prompt_text, str) or not prompt_text.strip():
        raise ConfigError("Prompt text must not be empty")

    opts = _coerce_options(options)
    defaults = defaults or DEFAULT_GENERATION

    return GenerationRequest(
        prompt_text=prompt_text,
        model=opts.model if opts.model is not None else defaults.model,
        temperature=(
            opts.temperature if opts.temperature is not None else defaults.temperature
        ),
        max_tokens=(
            opts.max_tokens if opts.max_tokens is not None else defaults.max_tokens
        ),
        streaming=opts.stream if opts.stream is not None else defaults.stream,
    )


def build_payload(
    request: GenerationRequest, provider: ProviderConfig
) -> dict[str, Any]:
    """Render the chat-completion JSON body for a request."""
    messages = [{"role": provider.prompt_role.value, "content": request.prompt_text}]
    if provider.placeholder_role is not None:
        messages.append({
            "role": provider.placeholder_role.value,
            "content": provider.placeholder_content,
        })

    return {
        "model": request.model,
        "messages": messages,
        "stream": request.streaming,
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
