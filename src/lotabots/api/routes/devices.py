"""Device capability endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["devices"])


@router.get("/devices")
def list_devices(request: Request) -> dict[str, Any]:
    """Return detected devices in preference order and the per-family capability report."""
    detector = request.app.state.detector
    return {
        "devices": [device.value for device in detector.detect()],
        "reports": [report.model_dump(mode="json") for report in detector.probe()],
    }
