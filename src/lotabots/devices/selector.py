"""Device selection policy: most capable usable device, CPU as the fallback."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from contextlib import ExitStack, contextmanager
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from lotabots.core.exceptions import GpuError
from lotabots.core.protocols import IDeviceBackend, IDeviceLock
from lotabots.core.timeouts import call_with_timeout
from lotabots.devices.detector import DeviceDetector
from lotabots.devices.locks import LocalDeviceLock
from lotabots.models.device import Device
from lotabots.models.pipeline import PipelineEvent, PipelineState, Stage

logger = logging.getLogger(__name__)


class DeviceSelection(BaseModel):
    """The device a quantize call runs on, and how it was chosen."""

    model_config = ConfigDict(frozen=True)

    device: Device
    events: list[PipelineEvent] = Field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return any(e.level == "warning" for e in self.events)


class DeviceSelector:
    """Chooses and holds a device for the duration of one quantize call.

    Candidates are walked in rank order. Hardware that is absent is skipped
    quietly; hardware whose backend is not built, or whose initialization
    fails, is skipped with a warning. With ``fallback_to_cpu=False`` an
    initialization failure is raised instead.
    """

    def __init__(
        self,
        detector: DeviceDetector,
        backend: IDeviceBackend,
        *,
        lock: IDeviceLock | None = None,
        fallback_to_cpu: bool = True,
        init_timeout: float | None = 60.0,
    ) -> None:
        self._detector = detector
        self._backend = backend
        self._lock = lock or LocalDeviceLock()
        self._fallback_to_cpu = fallback_to_cpu
        self._init_timeout = init_timeout

    @contextmanager
    def acquire(self) -> Iterator[DeviceSelection]:
        """Initialize the best usable device and hold its lock until exit."""
        events: list[PipelineEvent] = []
        for report in self._detector.probe():
            device = report.device
            if not report.detected:
                logger.debug("No %s hardware detected", device.name)
                continue
            if not report.available:
                self._warn(events, f"{device.name} hardware detected but backend unavailable")
                continue

            stack = ExitStack()
            try:
                stack.enter_context(self._lock.acquire(device))
                self._initialize(device, stack)
            except GpuError as exc:
                stack.close()
                if not self._fallback_to_cpu:
                    raise
                self._warn(events, f"{device.name} initialization failed, falling back: {exc.message}")
                continue
            except BaseException:
                stack.close()
                raise

            with stack:
                if device is Device.CPU and events:
                    self._warn(events, "Quantizing on CPU")
                else:
                    logger.info("Quantizing on %s", device.name)
                yield DeviceSelection(device=device, events=events)
            return

        raise GpuError("No usable device reported, not even CPU")

    def _initialize(self, device: Device, stack: ExitStack) -> None:
        """Initialize ``device`` while ``stack`` holds its lock.

        Backend failures of any type become ``GpuError``. On timeout the lock
        moves off ``stack`` and is released only when the abandoned worker
        returns, so no other run touches the device while it is mid-init.
        """
        def keep_lock_until_done(future: Future[None]) -> None:
            held = stack.pop_all()
            future.add_done_callback(lambda _: held.close())

        try:
            call_with_timeout(
                lambda: self._backend.initialize(device),
                self._init_timeout,
                lambda: GpuError(f"{device.name} initialization timed out after {self._init_timeout}s"),
                on_abandon=keep_lock_until_done,
            )
        except GpuError:
            raise
        except Exception as exc:
            raise GpuError(f"Failed to initialize {device.name} context: {exc}") from exc

    @staticmethod
    def _warn(events: list[PipelineEvent], message: str) -> None:
        logger.warning(message)
        events.append(PipelineEvent(
            state=PipelineState.QUANTIZING,
            stage=Stage.QUANTIZE,
            message=message,
            level="warning",
        ))
