"""Run submission endpoint."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from lotabots.core.exceptions import ConfigurationError
from lotabots.models.pipeline import CachePolicy, RunConfiguration

router = APIRouter(tags=["runs"])


class RunRequest(BaseModel):
    """Externally supplied run parameters; omitted values come from settings."""

    model_config = {"protected_namespaces": ()}

    model_id: str
    output_repo: str
    bits: int
    token: str | None = Field(default=None, repr=False)
    cache_dir: str | None = None
    mixed_precision: bool = False
    params: dict[str, str] = Field(default_factory=dict)
    cache_policy: CachePolicy | None = None


@router.post("/runs")
def submit_run(body: RunRequest, request: Request) -> JSONResponse:
    """Run the pipeline synchronously. 200 when done, 502 when a stage failed."""
    settings = request.app.state.settings
    try:
        config = RunConfiguration.build(
            model_id=body.model_id,
            output_repo=body.output_repo,
            bits=body.bits,
            token=body.token or settings.hub.token,
            cache_dir=body.cache_dir or settings.pipeline.cache_dir,
            mixed_precision=body.mixed_precision,
            params=body.params,
            cache_policy=body.cache_policy or settings.pipeline.cache_policy,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc

    orchestrator = request.app.state.orchestrator_factory(config.token)
    outcome = orchestrator.run(config)
    return JSONResponse(
        status_code=200 if outcome.ok else 502,
        content=jsonable_encoder(outcome.summary()),
    )
