"""Pipeline orchestration wired from application settings."""

from __future__ import annotations

from lotabots.backends import create_backends
from lotabots.core.config import AppSettings
from lotabots.core.protocols import IDeviceLock
from lotabots.devices.detector import DeviceDetector
from lotabots.devices.locks import LocalDeviceLock, RedisDeviceLock
from lotabots.devices.selector import DeviceSelector
from lotabots.devices.torch_device import TorchDeviceBackend
from lotabots.orchestration.orchestrator import PipelineOrchestrator
from lotabots.orchestration.state import CancellationToken

__all__ = ["CancellationToken", "PipelineOrchestrator", "create_device_selector", "create_orchestrator"]


def create_device_selector(settings: AppSettings | None = None) -> DeviceSelector:
    """Create the device selector and lock configured in ``settings``."""
    if settings is None:
        settings = AppSettings()

    lock: IDeviceLock
    if settings.lock.backend == "redis":
        lock = RedisDeviceLock(
            host=settings.lock.redis_host,
            port=settings.lock.redis_port,
            db=settings.lock.redis_db,
            ttl=settings.lock.ttl,
            blocking_timeout=settings.lock.blocking_timeout,
        )
    else:
        lock = LocalDeviceLock(timeout=settings.lock.blocking_timeout)

    backend = TorchDeviceBackend()
    return DeviceSelector(
        DeviceDetector(backend, marker_root=settings.quantize.device_marker_root),
        backend,
        lock=lock,
        fallback_to_cpu=settings.quantize.fallback_to_cpu,
        init_timeout=settings.quantize.device_init_timeout,
    )


def create_orchestrator(settings: AppSettings | None = None, token: str | None = None) -> PipelineOrchestrator:
    """Create a fully wired orchestrator.

    ``token`` is the run's credential and takes precedence over the hub token
    from settings.
    """
    if settings is None:
        settings = AppSettings()
    fetcher, quantizer, uploader = create_backends(settings, token=token)
    return PipelineOrchestrator(
        fetcher=fetcher,
        quantizer=quantizer,
        uploader=uploader,
        selector=create_device_selector(settings),
    )
