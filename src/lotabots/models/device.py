"""Compute device tags and capability reports."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class Device(StrEnum):
    CUDA = "cuda"
    ROCM = "rocm"
    CPU = "cpu"

    @property
    def rank(self) -> int:
        """Lower is preferred."""
        return _RANK[self]

    @property
    def is_accelerator(self) -> bool:
        return self is not Device.CPU

    @property
    def torch_device(self) -> str:
        # ROCm builds of torch expose HIP devices under the "cuda" type.
        return "cpu" if self is Device.CPU else "cuda"


_RANK = {Device.CUDA: 0, Device.ROCM: 1, Device.CPU: 2}


class DeviceReport(BaseModel):
    """Capability negotiation result for one device family.

    ``detected`` means the host exposes the hardware; ``available`` means the
    installed backend was built with support for it. Only a device that is
    both can be initialized.
    """

    model_config = ConfigDict(frozen=True)

    device: Device
    detected: bool
    available: bool

    @property
    def usable(self) -> bool:
        return self.detected and self.available
