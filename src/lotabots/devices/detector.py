"""Host accelerator detection."""

from __future__ import annotations

import logging
from pathlib import Path

from lotabots.core.protocols import IDeviceBackend
from lotabots.models.device import Device, DeviceReport

logger = logging.getLogger(__name__)

# Device nodes created by the kernel drivers of each accelerator family.
DEVICE_MARKERS: dict[Device, str] = {
    Device.CUDA: "nvidia0",
    Device.ROCM: "kfd",
}


class DeviceDetector:
    """Best-effort, side-effect free probe of host accelerators.

    Detection only looks for driver device nodes; it never allocates or
    reserves a device. CPU is always reported, ranked last.
    """

    def __init__(self, backend: IDeviceBackend, marker_root: Path | str = "/dev") -> None:
        self._backend = backend
        self._marker_root = Path(marker_root)

    def detect(self) -> list[Device]:
        """Return detected devices, most capable first, CPU last."""
        found = [device for device in DEVICE_MARKERS if self._has_marker(device)]
        found.sort(key=lambda d: d.rank)
        return [*found, Device.CPU]

    def probe(self) -> list[DeviceReport]:
        """Report, per device family, whether hardware and backend support exist."""
        reports = []
        for device in sorted(Device, key=lambda d: d.rank):
            detected = device is Device.CPU or self._has_marker(device)
            reports.append(DeviceReport(
                device=device,
                detected=detected,
                available=self._is_built(device),
            ))
        return reports

    def _has_marker(self, device: Device) -> bool:
        try:
            return (self._marker_root / DEVICE_MARKERS[device]).exists()
        except OSError as exc:
            logger.debug("Device marker probe for %s failed: %s", device, exc)
            return False

    def _is_built(self, device: Device) -> bool:
        if device is Device.CPU:
            return True
        try:
            return self._backend.is_built(device)
        except Exception as exc:  # detection never fails
            logger.warning("Backend capability check for %s failed: %s", device, exc)
            return False
