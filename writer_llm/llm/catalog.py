"""
Static model catalog used to populate model selection.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from .models import ModelInfo

BUILTIN_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(id="gemini-2.5-flash-preview-04-17", name="Gemini 2.5 Flash"),
    ModelInfo(id="gemini-2.5-pro-exp-03-25", name="Gemini 2.5 Pro"),
)
BUILTIN_DEFAULT_MODEL = "gemini-2.5-pro-exp-03-25"


class ModelCatalog:
    """
    Read-only id -> display name table.

    The catalog only lists what it knows. It never validates ids passed to
    the request builder; unknown ids are sent as-is and judged remotely.
    """

    def __init__(self, models: Iterable[ModelInfo], default_model: str):
        self._models = tuple(models)
        if not self._models:
            raise ValueError("Model catalog must contain at least one model")
        self._names: Mapping[str, str] = MappingProxyType(
            {m.id: m.name for m in self._models}
        )
        if default_model not in self._names:
            raise ValueError(
                f"Default model '{default_model}' is not listed in the catalog"
            )
        self._default_model = default_model

    @classmethod
    def from_config(cls, entries: list[dict], default_model: str) -> ModelCatalog:
        """Build a catalog from `[{id, name}, ...]` config entries."""
        models = []
        for entry in entries:
            if "id" not in entry:
                raise ValueError("Every catalog entry needs an 'id'")
            models.append(ModelInfo(id=entry["id"], name=entry.get("name", entry["id"])))
        return cls(models, default_model)

    @property
    def default_model(self) -> str:
        return self._default_model

    def get_available_models(self) -> list[ModelInfo]:
        """Return catalog entries in declaration order."""
        return list(self._models)

    def display_name(self, model_id: str) -> str | None:
        return self._names.get(model_id)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._names

    def __iter__(self) -> Iterator[ModelInfo]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)


DEFAULT_CATALOG = ModelCatalog(BUILTIN_MODELS, BUILTIN_DEFAULT_MODEL)
