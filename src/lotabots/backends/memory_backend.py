"""In-memory backends for unit tests: dict-backed fakes with call recording."""

from __future__ import annotations

from pathlib import Path

from lotabots.core.exceptions import FetchError, GpuError, LotabotsError, UploadError
from lotabots.core.files import atomic_path
from lotabots.models.device import Device
from lotabots.models.model import ModelDescriptor, describe_file
from lotabots.models.quantization import QuantizationConfig, build_scheme, derive_output_path


class MemoryFetcher:
    """Dict-backed IModelFetcher that writes canned payloads to disk."""

    def __init__(self, models: dict[str, bytes] | None = None, *, filename: str = "model.safetensors") -> None:
        self._models: dict[str, bytes] = dict(models or {})
        self.filename = filename
        self.calls: list[tuple[str, Path]] = []
        self.fail_with: LotabotsError | None = None

    def add_model(self, name: str, payload: bytes) -> None:
        self._models[name] = payload

    def fetch(self, model_name: str, destination: Path) -> ModelDescriptor:
        self.calls.append((model_name, destination))
        if self.fail_with is not None:
            raise self.fail_with
        if model_name not in self._models:
            raise FetchError(f"HTTP 404 - Repository {model_name} not found", status=404)
        with atomic_path(destination) as tmp_path:
            tmp_path.write_bytes(self._models[model_name])
        return describe_file(destination, model_name)


class MemoryQuantizer:
    """IModelQuantizer that copies the source bytes to the derived output path."""

    def __init__(self) -> None:
        self.validated: list[int] = []
        self.calls: list[tuple[ModelDescriptor, QuantizationConfig]] = []
        self.fail_with: LotabotsError | None = None

    def validate(self, bits: int) -> None:
        self.validated.append(bits)
        build_scheme(bits)

    def quantize(self, source: ModelDescriptor, config: QuantizationConfig) -> ModelDescriptor:
        build_scheme(config.bits)
        self.calls.append((source, config))
        if self.fail_with is not None:
            raise self.fail_with
        output_path = derive_output_path(source.path, config.bits)
        with atomic_path(output_path) as tmp_path:
            tmp_path.write_bytes(b"Q%d" % config.bits + source.path.read_bytes())
        return describe_file(output_path, f"{source.id}-{config.bits}bit", source.name)


class MemoryUploader:
    """Dict-backed IModelUploader keyed by repository then filename."""

    def __init__(self) -> None:
        self.repositories: dict[str, dict[str, bytes]] = {}
        self.calls: list[tuple[ModelDescriptor, str]] = []
        self.fail_with: LotabotsError | None = None

    def upload(self, artifact: ModelDescriptor, repository: str) -> None:
        self.calls.append((artifact, repository))
        if self.fail_with is not None:
            raise self.fail_with
        if not artifact.exists():
            raise UploadError(f"Artifact {artifact.path} does not exist")
        repo = self.repositories.setdefault(repository, {})
        repo[artifact.path.name] = artifact.path.read_bytes()


class StaticDeviceBackend:
    """IDeviceBackend with a fixed set of built and failing device families."""

    def __init__(self, built: set[Device] | None = None, failing: set[Device] | None = None) -> None:
        self._built = set(built or set()) | {Device.CPU}
        self._failing = set(failing or set())
        self.initialized: list[Device] = []

    def is_built(self, device: Device) -> bool:
        return device in self._built

    def initialize(self, device: Device) -> None:
        self.initialized.append(device)
        if device in self._failing:
            raise GpuError(f"Failed to initialize {device.name} context: forced failure")
