"""Device acquisition locks implementing IDeviceLock."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

import redis

from lotabots.core.exceptions import GpuError
from lotabots.models.device import Device

logger = logging.getLogger(__name__)

_PROCESS_LOCKS: dict[Device, threading.Lock] = {}
_REGISTRY_LOCK = threading.Lock()


def _process_lock(device: Device) -> threading.Lock:
    with _REGISTRY_LOCK:
        return _PROCESS_LOCKS.setdefault(device, threading.Lock())


class LocalDeviceLock:
    """Process-wide lock per accelerator. CPU runs are not serialized."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    @contextmanager
    def acquire(self, device: Device) -> Iterator[None]:
        if not device.is_accelerator:
            yield
            return
        lock = _process_lock(device)
        if not lock.acquire(timeout=-1 if self._timeout is None else self._timeout):
            raise GpuError(f"Timed out after {self._timeout}s waiting for {device.name} device")
        try:
            yield
        finally:
            lock.release()


class RedisDeviceLock:
    """Cross-process IDeviceLock backed by a Redis lock per device."""

    KEY_PREFIX = "lotabots:device:"

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 ttl: int = 7200, blocking_timeout: float | None = 600.0) -> None:
        self._ttl = ttl
        self._blocking_timeout = blocking_timeout
        self._client = redis.Redis(host=host, port=port, db=db)

    @contextmanager
    def acquire(self, device: Device) -> Iterator[None]:
        if not device.is_accelerator:
            yield
            return
        key = f"{self.KEY_PREFIX}{device.value}"
        try:
            # Released from the init worker thread when a device init times out.
            lock = self._client.lock(
                key, timeout=self._ttl, blocking_timeout=self._blocking_timeout, thread_local=False,
            )
            acquired = lock.acquire()
        except Exception as exc:
            raise GpuError(f"Redis lock {key!r} unavailable: {exc}") from exc
        if not acquired:
            raise GpuError(
                f"Timed out after {self._blocking_timeout}s waiting for {device.name} device"
            )
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError as exc:
                logger.warning("Device lock %s expired before release: %s", key, exc)
