"""Pipeline orchestrator: Fetch -> Quantize -> Upload in strict sequence."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from lotabots.core.exceptions import (
    FetchError,
    IoError,
    LotabotsError,
    QuantizationError,
    RunCancelledError,
    UploadError,
)
from lotabots.core.protocols import IModelFetcher, IModelQuantizer, IModelUploader
from lotabots.devices.selector import DeviceSelector
from lotabots.models.device import Device
from lotabots.models.model import ModelDescriptor, describe_file
from lotabots.models.pipeline import (
    CachePolicy,
    Done,
    Failed,
    PipelineState,
    RunConfiguration,
    RunOutcome,
    Stage,
)
from lotabots.orchestration.state import CancellationToken, RunStateMachine

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STAGE_ERRORS: dict[Stage, type[LotabotsError]] = {
    Stage.FETCH: FetchError,
    Stage.QUANTIZE: QuantizationError,
    Stage.UPLOAD: UploadError,
}


class _StageFailure(Exception):
    def __init__(self, stage: Stage, error: LotabotsError) -> None:
        self.stage = stage
        self.error = error
        super().__init__(str(error))


class _Run:
    """Mutable bookkeeping for one run; never shared between runs."""

    def __init__(self, config: RunConfiguration, cancel_token: CancellationToken) -> None:
        self.config = config
        self.cancel_token = cancel_token
        self.machine = RunStateMachine()
        self.artifacts: list[ModelDescriptor] = []
        self.device: Device | None = None


class PipelineOrchestrator:
    """Composes the three capabilities into one run.

    Each stage starts only after its predecessor returned a descriptor. The
    first failure ends the run as ``Failed(stage, error)``; there are no
    retries and no rollback, so artifacts written by earlier stages stay on
    disk for a later run to reuse.
    """

    def __init__(
        self,
        *,
        fetcher: IModelFetcher,
        quantizer: IModelQuantizer,
        uploader: IModelUploader,
        selector: DeviceSelector,
    ) -> None:
        self._fetcher = fetcher
        self._quantizer = quantizer
        self._uploader = uploader
        self._selector = selector

    def run(self, config: RunConfiguration, cancel_token: CancellationToken | None = None) -> RunOutcome:
        run = _Run(config, cancel_token or CancellationToken())
        logger.info(
            "Starting pipeline for %s to %d bits -> %s", config.model_id, config.bits, config.output_repo,
        )
        try:
            fetched = self._stage(run, Stage.FETCH, PipelineState.FETCHING, lambda: self._fetch(run))
            run.artifacts.append(fetched)

            quantized = self._stage(
                run, Stage.QUANTIZE, PipelineState.QUANTIZING, lambda: self._quantize(run, fetched),
            )
            run.artifacts.append(quantized)

            self._stage(run, Stage.UPLOAD, PipelineState.UPLOADING, lambda: self._upload(run, quantized))
        except _StageFailure as failure:
            return self._fail(run, failure)

        run.machine.advance(PipelineState.DONE, f"Uploaded {quantized.path.name} to {config.output_repo}")
        logger.info("Pipeline for %s completed: %s", config.model_id, quantized.path)
        return Done(
            model=quantized,
            artifacts=list(run.artifacts),
            device=run.device,
            events=list(run.machine.events),
        )

    # ---- stage wrapper ----

    def _stage(self, run: _Run, stage: Stage, state: PipelineState, fn: Callable[[], T]) -> T:
        if run.cancel_token.cancelled:
            raise _StageFailure(stage, RunCancelledError(stage))

        run.machine.advance(state, f"Starting {stage}", stage=stage)
        logger.info("Stage %s started for %s", stage, run.config.model_id)
        try:
            result = fn()
        except LotabotsError as exc:
            raise _StageFailure(stage, exc) from exc
        except Exception as exc:
            error = _STAGE_ERRORS[stage](f"Unexpected {stage} failure: {exc}")
            error.__cause__ = exc
            raise _StageFailure(stage, error) from exc
        logger.info("Stage %s finished for %s", stage, run.config.model_id)
        return result

    def _fail(self, run: _Run, failure: _StageFailure) -> Failed:
        run.machine.advance(
            PipelineState.FAILED, f"{failure.stage} failed: {failure.error.message}",
            stage=failure.stage, level="error",
        )
        logger.error("Pipeline for %s failed at %s: %s", run.config.model_id, failure.stage, failure.error)
        return Failed(
            stage=failure.stage,
            error=failure.error,
            artifacts=list(run.artifacts),
            device=run.device,
            events=list(run.machine.events),
        )

    # ---- stages ----

    def _fetch(self, run: _Run) -> ModelDescriptor:
        config = run.config
        try:
            config.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoError(f"Cannot create cache directory {config.cache_dir}: {exc}") from exc

        destination = config.fetch_destination(self._fetcher.filename)
        if config.cache_policy is CachePolicy.REUSE and destination.is_file():
            logger.info("Cache hit for %s at %s", config.model_id, destination)
            run.machine.record(f"Cache hit at {destination}", stage=Stage.FETCH)
            return describe_file(destination, config.model_id)
        return self._fetcher.fetch(config.model_id, destination)

    def _quantize(self, run: _Run, source: ModelDescriptor) -> ModelDescriptor:
        # Precision is checked before any device is probed or initialized.
        self._quantizer.validate(run.config.bits)
        with self._selector.acquire() as selection:
            run.device = selection.device
            run.machine.extend(selection.events)
            return self._quantizer.quantize(source, run.config.quantization_config(selection.device))

    def _upload(self, run: _Run, artifact: ModelDescriptor) -> None:
        self._uploader.upload(artifact, run.config.output_repo)
