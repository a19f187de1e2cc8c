"""Tests for the HTTP API over in-memory backends."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from lotabots.api.app import create_app
from lotabots.core.config import AppSettings
from lotabots.core.exceptions import UploadError
from lotabots.devices.detector import DeviceDetector
from lotabots.devices.selector import DeviceSelector
from lotabots.models.device import Device
from lotabots.orchestration import PipelineOrchestrator
from tests.fakes import MemoryFetcher, MemoryQuantizer, MemoryUploader, StaticDeviceBackend


@pytest.fixture()
def uploader():
    return MemoryUploader()


@pytest.fixture()
def detector(tmp_path):
    dev_root = tmp_path / "dev"
    dev_root.mkdir()
    (dev_root / "kfd").touch()
    return DeviceDetector(StaticDeviceBackend(built={Device.ROCM}), marker_root=dev_root)


@pytest.fixture()
def tokens():
    return []


@pytest.fixture()
def client(uploader, detector, tokens, monkeypatch):
    monkeypatch.delenv("HF_API_TOKEN", raising=False)
    monkeypatch.delenv("HF_TOKEN", raising=False)
    monkeypatch.delenv("LOTABOTS_HUB_TOKEN", raising=False)
    backend = StaticDeviceBackend(built={Device.ROCM})

    def factory(token):
        tokens.append(token)
        return PipelineOrchestrator(
            fetcher=MemoryFetcher({"org/m1": b"\x01" * 1000}),
            quantizer=MemoryQuantizer(),
            uploader=uploader,
            selector=DeviceSelector(detector, backend),
        )

    app = create_app(settings=AppSettings(), orchestrator_factory=factory, detector=detector)
    with TestClient(app) as test_client:
        yield test_client


def _body(tmp_path, **overrides):
    body = {"model_id": "org/m1", "output_repo": "out/m1-q8", "bits": 8, "cache_dir": str(tmp_path / "cache")}
    body.update(overrides)
    return body


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_ready_reports_environment(self, client):
        resp = client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["environment"] == "dev"


class TestDevices:
    def test_lists_devices_in_preference_order(self, client):
        data = client.get("/devices").json()
        assert data["devices"] == ["rocm", "cpu"]
        rocm = next(r for r in data["reports"] if r["device"] == "rocm")
        assert rocm == {"device": "rocm", "detected": True, "available": True}


class TestRuns:
    def test_successful_run(self, client, tmp_path, uploader):
        resp = client.post("/runs", json=_body(tmp_path))
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "done"
        assert data["device"] == "rocm"
        assert data["model"]["id"] == "org/m1-8bit"
        assert "out/m1-q8" in uploader.repositories

    def test_stage_failure_is_502(self, client, tmp_path):
        resp = client.post("/runs", json=_body(tmp_path, model_id="org/missing"))
        assert resp.status_code == 502
        data = resp.json()
        assert data["status"] == "failed"
        assert data["stage"] == "fetch"
        assert data["error"] == "FetchError"

    def test_unsupported_bits_fail_at_quantize(self, client, tmp_path):
        resp = client.post("/runs", json=_body(tmp_path, bits=5))
        assert resp.status_code == 502
        assert resp.json()["stage"] == "quantize"
        assert "Unsupported bit depth" in resp.json()["message"]

    def test_upload_auth_failure(self, client, tmp_path, uploader):
        uploader.fail_with = UploadError("authentication failure: 401 Unauthorized", status=401)
        resp = client.post("/runs", json=_body(tmp_path))
        assert resp.status_code == 502
        assert resp.json()["stage"] == "upload"
        assert resp.json()["message"].startswith("authentication failure")

    def test_invalid_configuration_is_422(self, client, tmp_path):
        resp = client.post("/runs", json=_body(tmp_path, output_repo="  "))
        assert resp.status_code == 422
        assert "output_repo" in resp.json()["detail"]

    def test_token_reaches_factory_but_not_response(self, client, tmp_path, tokens):
        resp = client.post("/runs", json=_body(tmp_path, token="hf_secret"))
        assert tokens == ["hf_secret"]
        assert "hf_secret" not in resp.text
