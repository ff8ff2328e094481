"""API token resolution."""

from __future__ import annotations

import os
from typing import Protocol, runtime_checkable


@runtime_checkable
class SecretResolver(Protocol):
    """Supplies the current API token, or None when none is configured."""

    async def get_api_key(self) -> str | None: ...


class EnvSecretResolver:
    """Reads the token from an environment variable (after `.env` loading)."""

    def __init__(self, env_key: str):
        self.env_key = env_key

    async def get_api_key(self) -> str | None:
        value = os.getenv(self.env_key)
        if value is None or not value.strip():
            return None
        return value.strip()


class StaticSecretResolver:
    """Fixed token, mainly for scripts and tests."""

    def __init__(self, api_key: str | None):
        self._api_key = api_key

    async def get_api_key(self) -> str | None:
        return self._api_key or None
