"""Tests for descriptors, run configuration and quantization schemes."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from lotabots.core.exceptions import ConfigurationError, QuantizationError, StageFailedError, UploadError
from lotabots.models.device import Device, DeviceReport
from lotabots.models.model import ModelDescriptor, describe_file, format_for_path
from lotabots.models.pipeline import CachePolicy, Done, Failed, RunConfiguration, Stage
from lotabots.models.quantization import SUPPORTED_BITS, build_scheme, derive_output_path


def _config(tmp_path: Path, **overrides) -> RunConfiguration:
    values = {"model_id": "org/m1", "output_repo": "out/m1-q4", "bits": 4, "cache_dir": tmp_path}
    values.update(overrides)
    return RunConfiguration.build(**values)


class TestModelDescriptor:
    def test_is_frozen(self, tmp_path):
        desc = ModelDescriptor(id="m1", name="m1", path=tmp_path / "a", format="safetensors", size=1)
        with pytest.raises(ValidationError):
            desc.size = 2

    def test_rejects_empty_id(self, tmp_path):
        with pytest.raises(ValidationError):
            ModelDescriptor(id="", name="m1", path=tmp_path / "a", format="safetensors", size=1)

    def test_describe_file_reads_size_and_format(self, tmp_path):
        path = tmp_path / "model.safetensors"
        path.write_bytes(b"x" * 1000)
        desc = describe_file(path, "m1")
        assert desc.size == 1000
        assert desc.format == "safetensors"
        assert desc.name == "m1"
        assert desc.exists()

    @pytest.mark.parametrize("name, expected", [
        ("model.safetensors", "safetensors"),
        ("pytorch_model.bin", "pytorch"),
        ("model.pt", "pytorch"),
        ("model.Q4_K_M.gguf", "gguf"),
        ("config.json", "json"),
        ("weights.onnx", "onnx"),
        ("README", "unknown"),
    ])
    def test_format_for_path(self, name, expected):
        assert format_for_path(Path(name)) == expected


class TestRunConfiguration:
    def test_build_valid(self, tmp_path):
        config = _config(tmp_path)
        assert config.bits == 4
        assert config.mixed_precision is False
        assert config.cache_policy is CachePolicy.REUSE

    @pytest.mark.parametrize("field", ["model_id", "output_repo"])
    def test_blank_identifiers_rejected(self, tmp_path, field):
        with pytest.raises(ConfigurationError, match=field):
            _config(tmp_path, **{field: "   "})

    def test_non_positive_bits_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="bits"):
            _config(tmp_path, bits=0)

    def test_unsupported_bits_accepted_until_quantize(self, tmp_path):
        assert _config(tmp_path, bits=5).bits == 5

    def test_token_hidden(self, tmp_path):
        config = _config(tmp_path, token="hf_secret")
        assert "hf_secret" not in repr(config)
        assert "token" not in config.model_dump()

    def test_fetch_destination_flattens_model_id(self, tmp_path):
        config = _config(tmp_path)
        assert config.fetch_destination("model.safetensors") == tmp_path / "org_m1" / "model.safetensors"

    def test_quantization_config_follows_cache_policy(self, tmp_path):
        config = _config(tmp_path, cache_policy="refresh", params={"skip": "lm_head"})
        qconfig = config.quantization_config(Device.CUDA)
        assert qconfig.device is Device.CUDA
        assert qconfig.reuse_existing is False
        assert qconfig.params == {"skip": "lm_head"}


class TestQuantizationScheme:
    @pytest.mark.parametrize("bits", sorted(SUPPORTED_BITS))
    def test_weights_and_activations_share_bit_depth(self, bits):
        scheme = build_scheme(bits)
        assert scheme.weights.bits == bits
        assert scheme.activations.bits == bits

    @pytest.mark.parametrize("bits", [1, 2, 3, 5, 16, 32])
    def test_unsupported_bits_raise(self, bits):
        with pytest.raises(QuantizationError, match="Unsupported bit depth"):
            build_scheme(bits)

    def test_qrange_for_4_bits(self):
        spec = build_scheme(4).weights
        assert (spec.qmin, spec.qmax) == (-8, 7)

    def test_output_path_is_deterministic(self, tmp_path):
        source = tmp_path / "org_m1" / "model.safetensors"
        first = derive_output_path(source, 4)
        assert first == derive_output_path(source, 4)
        assert first.name == "model.quantized_4_bit.safetensors"
        assert first != derive_output_path(source, 8)


class TestOutcomes:
    def test_failed_raise_for_status(self, tmp_path):
        failed = Failed(stage=Stage.UPLOAD, error=UploadError("authentication failure", status=401))
        assert not failed.ok
        assert failed.message == "authentication failure"
        with pytest.raises(StageFailedError, match="upload failed: authentication failure") as info:
            failed.raise_for_status()
        assert info.value.status == 401

    def test_done_summary(self, tmp_path):
        desc = ModelDescriptor(id="m1-4bit", name="m1", path=tmp_path / "m.safetensors",
                               format="safetensors", size=3)
        summary = Done(model=desc, artifacts=[desc], device=Device.CPU).summary()
        assert summary["status"] == "done"
        assert summary["model"]["size"] == 3


def test_device_ranking_and_reports():
    assert sorted(Device, key=lambda d: d.rank) == [Device.CUDA, Device.ROCM, Device.CPU]
    assert Device.ROCM.torch_device == "cuda"
    assert not DeviceReport(device=Device.CUDA, detected=True, available=False).usable
