"""Hugging Face Hub upload backend implementing IModelUploader."""

from __future__ import annotations

import logging
from typing import Any, Callable

from huggingface_hub import HfApi
from huggingface_hub.errors import HfHubHTTPError

from lotabots.core.exceptions import UploadError
from lotabots.core.timeouts import call_with_timeout
from lotabots.models.model import ModelDescriptor

logger = logging.getLogger(__name__)

AUTH_STATUSES = frozenset({401, 403})


class HuggingFaceUploader:
    """Creates the destination model repo if needed and uploads one artifact."""

    def __init__(self, token: str | None = None, *, endpoint: str | None = None,
                 private: bool = False, timeout: float | None = 1800.0,
                 api: HfApi | None = None) -> None:
        self._api = api or HfApi(endpoint=endpoint, token=token)
        self._private = private
        self._timeout = timeout

    def upload(self, artifact: ModelDescriptor, repository: str) -> None:
        if not repository or not repository.strip():
            raise UploadError("Repository name must not be empty")
        if not artifact.exists():
            raise UploadError(f"Artifact {artifact.path} does not exist")

        logger.info("Uploading quantized model to %s", repository)
        self._call(
            "Failed to create repo",
            lambda: self._api.create_repo(
                repo_id=repository, repo_type="model", private=self._private, exist_ok=True,
            ),
        )
        self._call(
            "Failed to upload model",
            lambda: self._api.upload_file(
                path_or_fileobj=str(artifact.path),
                path_in_repo=artifact.path.name,
                repo_id=repository,
                repo_type="model",
                commit_message=f"Upload {artifact.id}",
            ),
        )
        logger.info("Uploaded %s to %s", artifact.path.name, repository)

    def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        try:
            return call_with_timeout(
                fn,
                self._timeout,
                lambda: UploadError(f"{action}: timed out after {self._timeout}s"),
            )
        except UploadError:
            raise
        except HfHubHTTPError as exc:
            status = _status_of(exc)
            if status in AUTH_STATUSES:
                raise UploadError(f"authentication failure: {exc}", status=status) from exc
            raise UploadError(f"{action}: {exc}", status=status) from exc
        except Exception as exc:
            raise UploadError(f"{action}: {exc}") from exc


def _status_of(exc: HfHubHTTPError) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)
