"""Re-export capability protocols from core for convenience."""

from __future__ import annotations

from lotabots.core.protocols import IModelFetcher, IModelQuantizer, IModelUploader

__all__ = ["IModelFetcher", "IModelQuantizer", "IModelUploader"]
