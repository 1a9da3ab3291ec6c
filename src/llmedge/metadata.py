"""GGUF header metadata, readable without loading model weights."""
from __future__ import annotations

import logging
import os
from typing import Any

from gguf import GGUFReader, GGUFValueType

from .exceptions import MetadataReadError

logger = logging.getLogger(__name__)


def _field_value(field: Any) -> Any:
    if not field.types or not field.data:
        return None
    kind = field.types[0]
    if kind == GGUFValueType.ARRAY:
        return None
    part = field.parts[field.data[0]]
    if kind == GGUFValueType.STRING:
        return bytes(part).decode("utf-8", errors="replace")
    value = part[0]
    if kind == GGUFValueType.BOOL:
        return bool(value)
    if kind in (GGUFValueType.FLOAT32, GGUFValueType.FLOAT64):
        return float(value)
    return int(value)


class ModelMetadata:
    def __init__(self, path: str, fields: dict[str, Any]) -> None:
        self.path = path
        self._fields = fields

    @classmethod
    def open(cls, path: str) -> "ModelMetadata":
        if not os.path.isfile(path):
            raise MetadataReadError(f"Model file not found: {path}")
        try:
            reader = GGUFReader(path, "r")
        except (ValueError, OSError) as exc:
            raise MetadataReadError(f"Not a readable GGUF file: {path}: {exc}") from exc
        fields = {name: _field_value(field) for name, field in reader.fields.items()}
        logger.debug("Read %d metadata fields from %s", len(fields), path)
        return cls(path, fields)

    def get(self, key: str, default: Any = None) -> Any:
        value = self._fields.get(key)
        return default if value is None else value

    @property
    def architecture(self) -> str | None:
        return self.get("general.architecture")

    @property
    def context_size(self) -> int | None:
        arch = self.architecture
        if arch is None:
            return None
        value = self.get(f"{arch}.context_length")
        return int(value) if value is not None else None

    @property
    def chat_template(self) -> str | None:
        return self.get("tokenizer.chat_template")


def read_context_size(path: str) -> int | None:
    return ModelMetadata.open(path).context_size
