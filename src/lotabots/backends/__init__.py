"""Pluggable fetch/quantize/upload backends behind Protocol interfaces."""

from __future__ import annotations

from lotabots.backends.hf_fetch_backend import HuggingFaceFetcher
from lotabots.backends.hf_upload_backend import HuggingFaceUploader
from lotabots.backends.memory_backend import MemoryQuantizer, MemoryUploader
from lotabots.backends.s3_upload_backend import S3ModelUploader
from lotabots.backends.torch_quantize_backend import TorchQuantizer
from lotabots.core.config import AppSettings
from lotabots.core.protocols import IModelFetcher, IModelQuantizer, IModelUploader


def create_backends(
    settings: AppSettings | None = None,
    token: str | None = None,
) -> tuple[IModelFetcher, IModelQuantizer, IModelUploader]:
    """Create wired-up capability backends from application settings.

    ``token`` overrides the configured hub token for both fetch and upload.

    Returns:
        Tuple of (fetcher, quantizer, uploader).
    """
    if settings is None:
        settings = AppSettings()
    token = token or settings.hub.token

    fetcher = HuggingFaceFetcher(
        token,
        endpoint=settings.hub.endpoint,
        revision=settings.hub.revision,
        filename=settings.hub.filename,
        connect_timeout=settings.hub.connect_timeout,
        read_timeout=settings.hub.read_timeout,
        chunk_size=settings.hub.chunk_size,
    )

    quantizer: IModelQuantizer
    if settings.quantize.backend == "memory":
        quantizer = MemoryQuantizer()
    else:
        quantizer = TorchQuantizer(reuse_existing=settings.quantize.reuse_existing)

    uploader: IModelUploader
    if settings.upload.backend == "s3":
        uploader = S3ModelUploader(
            region=settings.upload.s3_region,
            endpoint_url=settings.upload.s3_endpoint_url,
            connect_timeout=settings.hub.connect_timeout,
            read_timeout=settings.upload.timeout,
        )
    elif settings.upload.backend == "memory":
        uploader = MemoryUploader()
    else:
        uploader = HuggingFaceUploader(
            token,
            endpoint=settings.hub.endpoint,
            private=settings.upload.private,
            timeout=settings.upload.timeout,
        )

    return fetcher, quantizer, uploader
