"""Torch device backend: build capabilities and context initialization."""

from __future__ import annotations

import logging

import torch

from lotabots.core.exceptions import GpuError
from lotabots.models.device import Device

logger = logging.getLogger(__name__)


class TorchDeviceBackend:
    """IDeviceBackend implementation over the installed torch build."""

    def is_built(self, device: Device) -> bool:
        if device is Device.CPU:
            return True
        if device is Device.CUDA:
            return torch.version.cuda is not None
        return getattr(torch.version, "hip", None) is not None

    def initialize(self, device: Device) -> None:
        """Set up the device context. CPU is a no-op."""
        if device is Device.CPU:
            return
        if not self.is_built(device):
            raise GpuError(f"torch {torch.__version__} was built without {device.name} support")
        try:
            if not torch.cuda.is_available():
                raise GpuError(f"No {device.name} device is available to torch")
            torch.cuda.init()
            index = torch.cuda.current_device()
            name = torch.cuda.get_device_name(index)
        except GpuError:
            raise
        except Exception as exc:
            raise GpuError(f"Failed to initialize {device.name} context: {exc}") from exc
        logger.info("Initialized %s device %d (%s)", device.name, index, name)
