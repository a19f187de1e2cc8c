"""Torch quantization backend implementing IModelQuantizer.

Weights are quantized per output channel with a symmetric scale:

    scale = max(|w_row|) / qmax,    q = clamp(round(w / scale), qmin, qmax)

and stored as int8 values next to a float32 ``<name>.scale`` tensor. Only
floating tensors with at least two dimensions are quantized; biases, norms
and integer buffers are copied through unchanged.
"""

from __future__ import annotations

import logging
from typing import Any

import torch
from safetensors.torch import load_file, save_file

from lotabots.core.exceptions import QuantizationError
from lotabots.core.files import atomic_path
from lotabots.models.model import ModelDescriptor, describe_file
from lotabots.models.quantization import (
    PrecisionSpec,
    QuantizationConfig,
    QuantizationScheme,
    build_scheme,
    derive_output_path,
)

logger = logging.getLogger(__name__)

SCALE_SUFFIX = ".scale"
_MIN_SCALE = 1e-12


class TorchQuantizer:
    """Production IModelQuantizer backed by torch and safetensors."""

    # Kept at float16 instead of quantized when mixed precision is requested.
    SENSITIVE_PATTERNS: tuple[str, ...] = ("embed", "lm_head", "norm")

    def __init__(self, *, reuse_existing: bool = True) -> None:
        self._reuse_existing = reuse_existing

    def validate(self, bits: int) -> None:
        build_scheme(bits)

    def quantize(self, source: ModelDescriptor, config: QuantizationConfig) -> ModelDescriptor:
        scheme = build_scheme(config.bits)
        output_path = derive_output_path(source.path, config.bits)
        model_id = f"{source.id}-{config.bits}bit"
        name = f"{source.name} ({config.bits}-bit)"

        if self._reuse_existing and config.reuse_existing and output_path.is_file():
            logger.info("Reusing quantized artifact %s", output_path)
            return describe_file(output_path, model_id, name)

        logger.info("Quantizing model at %s to %d bits on %s", source.path, config.bits, config.device)
        device = torch.device(config.device.torch_device)
        state = self._load(source, device)

        try:
            with torch.inference_mode():
                tensors = self._transform(state, scheme, config)
        except QuantizationError:
            raise
        except Exception as exc:
            raise QuantizationError(f"Quantization failed: {exc}") from exc

        metadata = {
            "format": "pt",
            "weight_bits": str(scheme.weights.bits),
            "activation_bits": str(scheme.activations.bits),
            "mixed_precision": str(config.mixed_precision).lower(),
            "source_id": source.id,
            **{f"param.{key}": value for key, value in config.params.items()},
        }
        self._save(tensors, output_path, metadata)
        logger.info("Quantized model saved to %s", output_path)
        return describe_file(output_path, model_id, name)

    # ---- load / transform / save ----

    def _load(self, source: ModelDescriptor, device: torch.device) -> dict[str, torch.Tensor]:
        if not source.path.is_file():
            raise QuantizationError(f"Failed to load model: {source.path} does not exist")
        try:
            if source.format == "safetensors":
                state: Any = load_file(str(source.path), device=str(device))
            else:
                state = torch.load(source.path, map_location=device, weights_only=True)
        except Exception as exc:
            raise QuantizationError(f"Failed to load model: {exc}") from exc

        if not isinstance(state, dict) or not all(isinstance(t, torch.Tensor) for t in state.values()):
            raise QuantizationError("Failed to load model: artifact is not a tensor state dict")
        return state

    def _transform(
        self,
        state: dict[str, torch.Tensor],
        scheme: QuantizationScheme,
        config: QuantizationConfig,
    ) -> dict[str, torch.Tensor]:
        skip = tuple(p.strip() for p in config.params.get("skip", "").split(",") if p.strip())
        out: dict[str, torch.Tensor] = {}
        for name, tensor in state.items():
            if not _quantizable(tensor) or any(p in name for p in skip):
                out[name] = tensor
            elif config.mixed_precision and any(p in name for p in self.SENSITIVE_PATTERNS):
                out[name] = tensor.to(torch.float16)
            else:
                values, scale = quantize_tensor(tensor, scheme.weights)
                if name + SCALE_SUFFIX in state:
                    raise QuantizationError(f"Tensor name collision on {name + SCALE_SUFFIX!r}")
                out[name] = values
                out[name + SCALE_SUFFIX] = scale
        return out

    @staticmethod
    def _save(tensors: dict[str, torch.Tensor], output_path, metadata: dict[str, str]) -> None:
        cpu_tensors = {name: t.detach().cpu().contiguous() for name, t in tensors.items()}
        try:
            with atomic_path(output_path) as tmp_path:
                save_file(cpu_tensors, str(tmp_path), metadata=metadata)
        except Exception as exc:
            raise QuantizationError(f"Failed to save quantized model: {exc}") from exc


def _quantizable(tensor: torch.Tensor) -> bool:
    return tensor.is_floating_point() and tensor.dim() >= 2 and tensor.numel() > 0


def quantize_tensor(tensor: torch.Tensor, spec: PrecisionSpec) -> tuple[torch.Tensor, torch.Tensor]:
    """Symmetric per-row quantization of ``tensor`` to ``spec.bits``."""
    rows = tensor.to(torch.float32).reshape(tensor.shape[0], -1)
    scale = rows.abs().amax(dim=1).clamp(min=_MIN_SCALE) / spec.qmax
    values = torch.round(rows / scale.unsqueeze(1)).clamp(spec.qmin, spec.qmax)
    return values.to(torch.int8).reshape(tensor.shape), scale


def dequantize_tensor(values: torch.Tensor, scale: torch.Tensor) -> torch.Tensor:
    rows = values.to(torch.float32).reshape(values.shape[0], -1)
    return (rows * scale.unsqueeze(1)).reshape(values.shape)
