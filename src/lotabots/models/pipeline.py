"""Run configuration, pipeline states and run outcomes."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lotabots.core.exceptions import ConfigurationError, LotabotsError, StageFailedError
from lotabots.core.types import BackendParams, Bits, ModelId, RepoId
from lotabots.models.device import Device
from lotabots.models.model import ModelDescriptor
from lotabots.models.quantization import QuantizationConfig


class CachePolicy(StrEnum):
    REUSE = "reuse"      # complete artifacts already on disk are cache hits
    REFRESH = "refresh"  # always re-fetch and re-quantize


class Stage(StrEnum):
    FETCH = "fetch"
    QUANTIZE = "quantize"
    UPLOAD = "upload"


class PipelineState(StrEnum):
    START = "start"
    FETCHING = "fetching"
    QUANTIZING = "quantizing"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


class PipelineEvent(BaseModel):
    """Observable event emitted during a run."""

    model_config = ConfigDict(frozen=True)

    state: PipelineState
    message: str
    stage: Stage | None = None
    level: Literal["info", "warning", "error"] = "info"


class RunConfiguration(BaseModel):
    """Complete, immutable input to one pipeline run."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: ModelId
    output_repo: RepoId
    bits: Bits = Field(gt=0)
    token: str | None = Field(default=None, repr=False, exclude=True)
    cache_dir: Path
    mixed_precision: bool = False
    params: BackendParams = Field(default_factory=dict)
    cache_policy: CachePolicy = CachePolicy.REUSE

    @field_validator("model_id", "output_repo")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @classmethod
    def build(cls, **values: Any) -> RunConfiguration:
        """Validate external input, raising ``ConfigurationError`` on failure."""
        try:
            return cls(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid run configuration: {problems}") from exc

    def fetch_destination(self, filename: str) -> Path:
        """Cache location of ``filename`` fetched for this run's model."""
        return self.cache_dir / self.model_id.replace("/", "_") / filename

    def quantization_config(self, device: Device) -> QuantizationConfig:
        return QuantizationConfig(
            bits=self.bits,
            device=device,
            mixed_precision=self.mixed_precision,
            params=dict(self.params),
            reuse_existing=self.cache_policy is CachePolicy.REUSE,
        )


class Done(BaseModel):
    """Terminal success: the uploaded artifact and every artifact the run produced."""

    model_config = ConfigDict(frozen=True)

    status: Literal["done"] = "done"
    model: ModelDescriptor
    artifacts: list[ModelDescriptor] = Field(default_factory=list)
    device: Device | None = None
    events: list[PipelineEvent] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True

    def raise_for_status(self) -> None:
        return None

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "stage": None,
            "message": f"uploaded {self.model.path.name}",
            "model": self.model.model_dump(mode="json"),
            "device": self.device,
            "events": [e.model_dump(mode="json") for e in self.events],
        }


class Failed(BaseModel):
    """Terminal failure attributed to the stage that produced ``error``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: Literal["failed"] = "failed"
    stage: Stage
    error: LotabotsError
    artifacts: list[ModelDescriptor] = Field(default_factory=list)
    device: Device | None = None
    events: list[PipelineEvent] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return self.error.message

    def raise_for_status(self) -> None:
        raise StageFailedError(self.stage, self.message, status=self.error.status) from self.error

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "stage": self.stage,
            "message": self.message,
            "error": type(self.error).__name__,
            "model": self.artifacts[-1].model_dump(mode="json") if self.artifacts else None,
            "device": self.device,
            "events": [e.model_dump(mode="json") for e in self.events],
        }


RunOutcome = Union[Done, Failed]
