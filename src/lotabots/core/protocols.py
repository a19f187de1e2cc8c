"""Protocol interfaces for all Lotabots abstractions.

All inter-layer communication uses these Protocols: structural typing,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol, runtime_checkable

from lotabots.core.types import Bits, ModelId, RepoId
from lotabots.models.device import Device
from lotabots.models.model import ModelDescriptor
from lotabots.models.quantization import QuantizationConfig


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

@runtime_checkable
class IModelFetcher(Protocol):
    """Retrieves a named model from a remote source into local storage.

    ``filename`` is the remote file the fetcher retrieves; the cached copy
    carries the same name so its format tag matches its contents.
    Raises ``FetchError``. Writes exactly one file at ``destination`` on
    success and nothing on failure.
    """

    filename: str

    def fetch(self, model_name: ModelId, destination: Path) -> ModelDescriptor: ...


# ---------------------------------------------------------------------------
# Quantize
# ---------------------------------------------------------------------------

@runtime_checkable
class IModelQuantizer(Protocol):
    """Transforms a model artifact into a new artifact at reduced precision.

    Raises ``QuantizationError``. ``validate`` must not touch the filesystem
    or any device.
    """

    def validate(self, bits: Bits) -> None: ...

    def quantize(self, source: ModelDescriptor, config: QuantizationConfig) -> ModelDescriptor: ...


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@runtime_checkable
class IModelUploader(Protocol):
    """Publishes an artifact to a destination repository, creating it if absent.

    Raises ``UploadError``.
    """

    def upload(self, artifact: ModelDescriptor, repository: RepoId) -> None: ...


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------

@runtime_checkable
class IDeviceBackend(Protocol):
    """Tensor library view of a device family."""

    def is_built(self, device: Device) -> bool: ...

    def initialize(self, device: Device) -> None: ...


@runtime_checkable
class IDeviceLock(Protocol):
    """Serializes acquire -> use -> release of one physical device."""

    def acquire(self, device: Device) -> AbstractContextManager[None]: ...
