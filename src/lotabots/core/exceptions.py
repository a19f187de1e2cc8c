"""Lotabots exception hierarchy."""

from __future__ import annotations


class LotabotsError(Exception):
    """Base exception for all Lotabots errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(message)


class FetchError(LotabotsError):
    """Remote model retrieval failed (network, auth, not-found, local write)."""


class QuantizationError(LotabotsError):
    """Unsupported precision, model load, transform or serialization failure."""


class GpuError(LotabotsError):
    """Device initialization failed. Recoverable through CPU fallback."""


class UploadError(LotabotsError):
    """Repository creation, authentication or transmission failed."""


class IoError(LotabotsError):
    """Local filesystem failure not covered by a stage-specific error."""


class ConfigurationError(LotabotsError):
    """Run configuration failed validation."""


class PipelineError(LotabotsError):
    """Error in pipeline control flow."""


class StageFailedError(PipelineError):
    """A pipeline stage failed."""

    def __init__(self, stage: str, message: str, status: int | None = None) -> None:
        self.stage = stage
        super().__init__(f"{stage} failed: {message}", status=status)


class RunCancelledError(PipelineError):
    """The run was cancelled before a stage started."""

    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"Run cancelled before {stage}")
