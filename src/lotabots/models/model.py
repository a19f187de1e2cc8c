"""Model descriptor: identity, location, format and size of one artifact."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

_FORMATS_BY_SUFFIX = {
    ".safetensors": "safetensors",
    ".bin": "pytorch",
    ".pt": "pytorch",
    ".pth": "pytorch",
    ".gguf": "gguf",
    ".json": "json",
}


def format_for_path(path: Path) -> str:
    """Map a file suffix to a serialized format tag."""
    suffix = path.suffix.lower()
    if suffix in _FORMATS_BY_SUFFIX:
        return _FORMATS_BY_SUFFIX[suffix]
    return suffix.lstrip(".") or "unknown"


class ModelDescriptor(BaseModel):
    """A model artifact on local disk.

    Descriptors are never mutated: each stage produces a new descriptor that
    points at a new file, and the previous file stays where it is.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    path: Path
    format: str
    size: int = Field(ge=0)

    def exists(self) -> bool:
        return self.path.is_file()


def describe_file(path: Path, model_id: str, name: str | None = None) -> ModelDescriptor:
    """Build a descriptor for a complete file already on disk."""
    return ModelDescriptor(
        id=model_id,
        name=name or model_id,
        path=path,
        format=format_for_path(path),
        size=path.stat().st_size,
    )
