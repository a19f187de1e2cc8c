"""Tests for the Hub fetch backend against a stubbed requests session."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from lotabots.backends.hf_fetch_backend import HuggingFaceFetcher
from lotabots.core.exceptions import FetchError


class FakeResponse:
    def __init__(self, status_code: int = 200, chunks=(), text: str = "", reason: str = "OK",
                 fail_after: int | None = None) -> None:
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = text
        self.reason = reason
        self._chunks = list(chunks)
        self._fail_after = fail_after

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def iter_content(self, chunk_size=1):
        for index, chunk in enumerate(self._chunks):
            if self._fail_after is not None and index >= self._fail_after:
                raise requests.ConnectionError("connection reset by peer")
            yield chunk


def _fetcher(response: FakeResponse | Exception, **kwargs):
    session = MagicMock(spec=requests.Session)
    if isinstance(response, Exception):
        session.get.side_effect = response
    else:
        session.get.return_value = response
    return HuggingFaceFetcher(session=session, **kwargs), session


class TestHuggingFaceFetcher:
    def test_build_url(self):
        fetcher, _ = _fetcher(FakeResponse(), endpoint="https://hub.example/", revision="v2",
                              filename="pytorch_model.bin")
        assert fetcher.build_url("org/m1") == "https://hub.example/org/m1/resolve/v2/pytorch_model.bin"

    def test_fetch_writes_file_and_reports_size(self, tmp_path):
        fetcher, session = _fetcher(FakeResponse(chunks=[b"a" * 600, b"", b"b" * 400]))
        destination = tmp_path / "org_m1" / "model.safetensors"

        desc = fetcher.fetch("org/m1", destination)

        assert desc.size == 1000
        assert desc.id == "org/m1"
        assert desc.format == "safetensors"
        assert destination.read_bytes() == b"a" * 600 + b"b" * 400
        url = session.get.call_args.args[0]
        assert url == "https://huggingface.co/org/m1/resolve/main/model.safetensors"
        assert session.get.call_args.kwargs["stream"] is True

    def test_bearer_token_sent(self, tmp_path):
        fetcher, session = _fetcher(FakeResponse(chunks=[b"x"]), token="hf_abc")
        fetcher.fetch("m1", tmp_path / "model.safetensors")
        assert session.get.call_args.kwargs["headers"] == {"Authorization": "Bearer hf_abc"}

    def test_anonymous_request_has_no_auth_header(self, tmp_path):
        fetcher, session = _fetcher(FakeResponse(chunks=[b"x"]))
        fetcher.fetch("m1", tmp_path / "model.safetensors")
        assert session.get.call_args.kwargs["headers"] == {}

    def test_http_error_carries_status_and_body(self, tmp_path):
        fetcher, _ = _fetcher(FakeResponse(status_code=404, text="Repository not found", reason="Not Found"))
        destination = tmp_path / "model.safetensors"
        with pytest.raises(FetchError, match="HTTP 404 - Repository not found") as info:
            fetcher.fetch("missing", destination)
        assert info.value.status == 404
        assert not destination.exists()

    def test_http_error_without_body_uses_reason(self, tmp_path):
        fetcher, _ = _fetcher(FakeResponse(status_code=401, reason="Unauthorized"))
        with pytest.raises(FetchError, match="HTTP 401 - Unauthorized"):
            fetcher.fetch("gated", tmp_path / "model.safetensors")

    def test_interrupted_stream_leaves_previous_file(self, tmp_path):
        destination = tmp_path / "model.safetensors"
        destination.write_bytes(b"previous")
        fetcher, _ = _fetcher(FakeResponse(chunks=[b"a", b"b", b"c"], fail_after=1))

        with pytest.raises(FetchError, match="connection reset by peer"):
            fetcher.fetch("m1", destination)

        assert destination.read_bytes() == b"previous"
        assert [p.name for p in tmp_path.iterdir()] == ["model.safetensors"]

    def test_connection_error_is_fetch_error(self, tmp_path):
        fetcher, _ = _fetcher(requests.ConnectionError("name resolution failed"))
        with pytest.raises(FetchError, match="name resolution failed"):
            fetcher.fetch("m1", tmp_path / "model.safetensors")

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_model_name(self, tmp_path, name):
        fetcher, session = _fetcher(FakeResponse())
        with pytest.raises(FetchError, match="must not be empty"):
            fetcher.fetch(name, tmp_path / "model.safetensors")
        session.get.assert_not_called()

    def test_fetcher_exposes_revision_and_filename(self):
        fetcher, _ = _fetcher(FakeResponse(), revision="v2", filename="pytorch_model.bin")
        assert fetcher.revision == "v2"
        assert fetcher.filename == "pytorch_model.bin"

    def test_refetch_yields_identical_file(self, tmp_path):
        chunks = [b"a" * 600, b"b" * 400]
        session = MagicMock(spec=requests.Session)
        session.get.side_effect = [FakeResponse(chunks=chunks), FakeResponse(chunks=chunks)]
        fetcher = HuggingFaceFetcher(session=session)
        destination = tmp_path / "model.safetensors"

        first = fetcher.fetch("m1", destination)
        first_bytes = destination.read_bytes()
        second = fetcher.fetch("m1", destination)

        assert destination.read_bytes() == first_bytes == b"a" * 600 + b"b" * 400
        assert first.size == second.size == 1000
        assert [p.name for p in tmp_path.iterdir()] == ["model.safetensors"]
        assert not any(p.suffix == ".part" for p in tmp_path.iterdir())
