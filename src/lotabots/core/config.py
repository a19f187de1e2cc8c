"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

from lotabots.models.pipeline import CachePolicy


class HubConfig(BaseSettings):
    """Model hub (fetch source and default upload destination) configuration."""

    model_config = {"env_prefix": "LOTABOTS_HUB_", "populate_by_name": True}

    endpoint: str = "https://huggingface.co"
    token: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("LOTABOTS_HUB_TOKEN", "HF_API_TOKEN", "HF_TOKEN"),
    )
    revision: str = "main"
    filename: str = "model.safetensors"
    connect_timeout: float = 10.0
    read_timeout: float = 300.0
    chunk_size: int = 1024 * 1024


class QuantizeConfig(BaseSettings):
    """Quantization backend and device policy configuration."""

    model_config = {"env_prefix": "LOTABOTS_QUANTIZE_"}

    backend: Literal["torch", "memory"] = "torch"
    fallback_to_cpu: bool = True
    device_init_timeout: float = 60.0
    reuse_existing: bool = True
    device_marker_root: str = "/dev"


class UploadConfig(BaseSettings):
    """Upload destination configuration."""

    model_config = {"env_prefix": "LOTABOTS_UPLOAD_"}

    backend: Literal["hf", "s3", "memory"] = "hf"
    timeout: float = 1800.0
    private: bool = False
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None  # LocalStack override


class LockConfig(BaseSettings):
    """Device acquisition lock configuration."""

    model_config = {"env_prefix": "LOTABOTS_LOCK_"}

    backend: Literal["local", "redis"] = "local"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    ttl: int = 7200  # must outlive the longest quantization
    blocking_timeout: float = 600.0


class PipelineConfig(BaseSettings):
    """Run defaults shared by every pipeline execution."""

    model_config = {"env_prefix": "LOTABOTS_PIPELINE_"}

    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".cache" / "lotabots")
    cache_policy: CachePolicy = CachePolicy.REUSE


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "LOTABOTS_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"

    hub: HubConfig = Field(default_factory=HubConfig)
    quantize: QuantizeConfig = Field(default_factory=QuantizeConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
