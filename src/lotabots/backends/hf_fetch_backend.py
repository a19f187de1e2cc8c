"""Hugging Face Hub fetch backend implementing IModelFetcher."""

from __future__ import annotations

import logging
from pathlib import Path

import requests

from lotabots.core.exceptions import FetchError
from lotabots.core.files import atomic_path
from lotabots.models.model import ModelDescriptor, format_for_path

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 2000


class HuggingFaceFetcher:
    """Downloads one file of a Hub model over HTTP.

    The file is resolved as ``{endpoint}/{model}/resolve/{revision}/{filename}``
    and streamed into a temporary file that is renamed onto the destination
    once the body has been fully received.
    """

    def __init__(self, token: str | None = None, *, endpoint: str = "https://huggingface.co",
                 revision: str = "main", filename: str = "model.safetensors",
                 connect_timeout: float = 10.0, read_timeout: float = 300.0,
                 chunk_size: int = 1024 * 1024, session: requests.Session | None = None) -> None:
        self._token = token
        self._endpoint = endpoint.rstrip("/")
        self.revision = revision
        self.filename = filename
        self._timeout = (connect_timeout, read_timeout)
        self._chunk_size = chunk_size
        self._session = session or requests.Session()

    def build_url(self, model_name: str) -> str:
        return f"{self._endpoint}/{model_name}/resolve/{self.revision}/{self.filename}"

    def fetch(self, model_name: str, destination: Path) -> ModelDescriptor:
        if not model_name or not model_name.strip():
            raise FetchError("Model name must not be empty")

        url = self.build_url(model_name)
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        logger.info("Fetching model from %s", url)

        try:
            with self._session.get(url, headers=headers, stream=True, timeout=self._timeout) as response:
                if not response.ok:
                    raise FetchError(
                        f"HTTP {response.status_code} - {_error_body(response)}",
                        status=response.status_code,
                    )
                size = self._write_body(response, destination)
        except requests.RequestException as exc:
            raise FetchError(f"Request to {url} failed: {exc}") from exc

        logger.info("Model downloaded to %s (%d bytes)", destination, size)
        return ModelDescriptor(
            id=model_name,
            name=model_name,
            path=destination,
            format=format_for_path(destination),
            size=size,
        )

    def _write_body(self, response: requests.Response, destination: Path) -> int:
        written = 0
        try:
            with atomic_path(destination) as tmp_path:
                with tmp_path.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size=self._chunk_size):
                        if chunk:
                            fh.write(chunk)
                            written += len(chunk)
        except requests.RequestException:
            raise
        except OSError as exc:
            raise FetchError(f"Failed to write {destination}: {exc}") from exc
        return written


def _error_body(response: requests.Response) -> str:
    try:
        text = response.text.strip()
    except (requests.RequestException, UnicodeDecodeError):
        text = ""
    return text[:_ERROR_BODY_LIMIT] or response.reason or "Unknown error"
