"""Shared test doubles re-exported from the memory backends."""

from __future__ import annotations

from lotabots.backends.memory_backend import (
    MemoryFetcher,
    MemoryQuantizer,
    MemoryUploader,
    StaticDeviceBackend,
)

__all__ = ["MemoryFetcher", "MemoryQuantizer", "MemoryUploader", "StaticDeviceBackend"]
