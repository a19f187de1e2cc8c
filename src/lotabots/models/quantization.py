"""Quantization precision schemes and per-call configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from lotabots.core.exceptions import QuantizationError
from lotabots.models.device import Device

SUPPORTED_BITS: frozenset[int] = frozenset({4, 8})


class PrecisionSpec(BaseModel):
    """Bit depth and storage dtype for one tensor class."""

    model_config = ConfigDict(frozen=True)

    bits: int
    dtype: str  # storage dtype of the quantized values

    @property
    def qmax(self) -> int:
        return 2 ** (self.bits - 1) - 1

    @property
    def qmin(self) -> int:
        return -(2 ** (self.bits - 1))


class QuantizationScheme(BaseModel):
    """Weight and activation precision applied by the backend."""

    model_config = ConfigDict(frozen=True)

    weights: PrecisionSpec
    activations: PrecisionSpec


class QuantizationConfig(BaseModel):
    """Input to one ``quantize`` call."""

    model_config = ConfigDict(frozen=True)

    bits: int
    device: Device = Device.CPU
    mixed_precision: bool = False
    params: dict[str, str] = Field(default_factory=dict)
    reuse_existing: bool = True  # an existing output file is a cache hit


def build_scheme(bits: int) -> QuantizationScheme:
    """Return the scheme for ``bits``, raising for unsupported depths.

    Weights and activations use the same bit depth. 4-bit values are stored
    unpacked in int8 containers.
    """
    if bits not in SUPPORTED_BITS:
        raise QuantizationError(
            f"Unsupported bit depth: {bits} (supported: {sorted(SUPPORTED_BITS)})"
        )
    spec = PrecisionSpec(bits=bits, dtype="int8")
    return QuantizationScheme(weights=spec, activations=spec)


def derive_output_path(source_path: Path, bits: int) -> Path:
    """Deterministic output location for ``source_path`` quantized to ``bits``."""
    return source_path.with_name(f"{source_path.stem}.quantized_{bits}_bit.safetensors")
