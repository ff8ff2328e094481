"""Configuration management for the generation client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from writer_llm.llm.catalog import ModelCatalog
from writer_llm.llm.exceptions import ConfigError
from writer_llm.llm.models import GenerationDefaults, MessageRole, ProviderConfig


class Configuration:
    """Manages configuration and environment variables for the client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self.load_env()  # Load .env for API keys
        self._config = self._load_yaml_config()
        self._catalog: ModelCatalog | None = None

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ConfigError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    @property
    def active_provider(self) -> str:
        return self._config.get("llm", {}).get("active", "gemini")

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Raises:
            ConfigError: If the active provider has no configuration block.
        """
        providers = self._config.get("llm", {}).get("providers", {})

        if self.active_provider not in providers:
            raise ConfigError(
                f"Active provider '{self.active_provider}' not found in providers config"
            )

        return providers[self.active_provider]

    @property
    def api_key_env(self) -> str:
        """Name of the environment variable that holds the API key."""
        return self.get_provider_config().api_key_env

    def get_provider_config(self) -> ProviderConfig:
        """Build the provider endpoint settings.

        Raises:
            ConfigError: If base_url is missing or a role is unknown.
        """
        llm_config = self.get_llm_config()

        if "base_url" not in llm_config:
            raise ConfigError(
                f"base_url must be explicitly configured for provider "
                f"'{self.active_provider}' in config.yaml"
            )

        roles = llm_config.get("roles", {})
        http_config = llm_config.get("http_client", {})

        timeout = http_config.get("timeout")
        if timeout is not None and timeout <= 0:
            raise ConfigError("http_client.timeout must be positive or null")

        max_connections = http_config.get("max_connections", 100)
        max_keepalive = http_config.get("max_keepalive", 20)
        if max_connections < 1:
            raise ConfigError("http_client.max_connections must be at least 1")
        if max_keepalive > max_connections:
            raise ConfigError("http_client.max_keepalive must be <= max_connections")

        placeholder_role = roles.get("placeholder_role", "user")

        return ProviderConfig(
            name=self.active_provider,
            base_url=llm_config["base_url"],
            endpoint=llm_config.get("endpoint", "/chat/completions"),
            api_key_env=llm_config.get("api_key_env", "GEMINI_API_KEY"),
            prompt_role=self._parse_role(roles.get("prompt_role", "system")),
            placeholder_role=(
                self._parse_role(placeholder_role)
                if placeholder_role is not None else None
            ),
            placeholder_content=roles.get("placeholder_content", "none"),
            timeout=timeout,
            max_connections=max_connections,
            max_keepalive=max_keepalive,
        )

    @staticmethod
    def _parse_role(value: str) -> MessageRole:
        try:
            return MessageRole(value)
        except ValueError as e:
            raise ConfigError(f"Unknown message role '{value}'") from e

    def get_model_catalog(self) -> ModelCatalog:
        """Model catalog, built once per configuration instance."""
        if self._catalog is None:
            llm_config = self.get_llm_config()
            entries = llm_config.get("models")
            if not entries:
                raise ConfigError(
                    f"models must list at least one entry for provider "
                    f"'{self.active_provider}'"
                )
            default_model = llm_config.get("defaults", {}).get("model")
            if default_model is None:
                first = entries[0]
                if not isinstance(first, dict) or "id" not in first:
                    raise ConfigError("Every catalog entry needs an 'id'")
                default_model = first["id"]
            try:
                self._catalog = ModelCatalog.from_config(entries, default_model)
            except ValueError as e:
                raise ConfigError(str(e)) from e
        return self._catalog

    def get_generation_defaults(self) -> GenerationDefaults:
        """Defaults applied to options a caller leaves unspecified.

        Raises:
            ConfigError: If a default is out of range.
        """
        defaults = self.get_llm_config().get("defaults", {})
        model = defaults.get("model", self.get_model_catalog().default_model)
        temperature = defaults.get("temperature", 0.7)
        max_tokens = defaults.get("max_tokens", 64000)
        stream = defaults.get("stream", False)

        if (
            isinstance(temperature, bool)
            or not isinstance(temperature, int | float)
            or not 0.0 <= temperature <= 2.0
        ):
            raise ConfigError("defaults.temperature must be a number between 0 and 2")
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens < 1:
            raise ConfigError("defaults.max_tokens must be a positive integer")

        return GenerationDefaults(
            model=model,
            temperature=float(temperature),
            max_tokens=max_tokens,
            stream=bool(stream),
        )

    def get_streaming_config(self) -> dict[str, Any]:
        """Get SSE framing settings, filling in the standard values."""
        streaming = self._config.get("streaming", {})
        result = {
            "event_prefix": streaming.get("event_prefix", "data:"),
            "done_sentinel": streaming.get("done_sentinel", "[DONE]"),
            "encoding": streaming.get("encoding", "utf-8"),
        }
        if not result["event_prefix"]:
            raise ConfigError("streaming.event_prefix must not be empty")
        return result

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
