"""S3 upload backend implementing IModelUploader.

The repository is addressed as ``bucket`` or ``bucket/prefix``; the artifact
is stored under ``prefix/<artifact filename>``.
"""

from __future__ import annotations

import logging

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from lotabots.core.exceptions import UploadError
from lotabots.models.model import ModelDescriptor

logger = logging.getLogger(__name__)

_AUTH_CODES = frozenset({
    "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken", "InvalidToken",
})
_MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})


class S3ModelUploader:
    """Production IModelUploader backed by S3."""

    def __init__(self, region: str = "us-east-1", endpoint_url: str | None = None,
                 connect_timeout: float = 10.0, read_timeout: float = 300.0) -> None:
        self._region = region
        kwargs: dict = {
            "region_name": region,
            "config": Config(connect_timeout=connect_timeout, read_timeout=read_timeout),
        }
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("s3", **kwargs)

    def upload(self, artifact: ModelDescriptor, repository: str) -> None:
        bucket, _, prefix = repository.strip().strip("/").partition("/")
        if not bucket:
            raise UploadError("Repository name must not be empty")
        if not artifact.exists():
            raise UploadError(f"Artifact {artifact.path} does not exist")

        key = f"{prefix.rstrip('/')}/{artifact.path.name}" if prefix else artifact.path.name
        self._ensure_bucket(bucket)
        logger.info("Uploading %s to s3://%s/%s", artifact.path.name, bucket, key)
        try:
            self._client.upload_file(str(artifact.path), bucket, key)
        except (ClientError, BotoCoreError, S3UploadFailedError) as exc:
            raise _upload_error("Failed to upload model", exc) from exc

    def _ensure_bucket(self, bucket: str) -> None:
        """Create ``bucket`` unless it already exists. Existing buckets are not an error."""
        try:
            self._client.head_bucket(Bucket=bucket)
            return
        except ClientError as exc:
            if _error_code(exc) not in _MISSING_BUCKET_CODES:
                raise _upload_error("Failed to create repo", exc) from exc
        except BotoCoreError as exc:
            raise _upload_error("Failed to create repo", exc) from exc

        kwargs: dict = {"Bucket": bucket}
        if self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        try:
            self._client.create_bucket(**kwargs)
            logger.info("Created bucket %s", bucket)
        except ClientError as exc:
            if _error_code(exc) == "BucketAlreadyOwnedByYou":
                return
            raise _upload_error("Failed to create repo", exc) from exc
        except BotoCoreError as exc:
            raise _upload_error("Failed to create repo", exc) from exc


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _upload_error(action: str, exc: Exception) -> UploadError:
    status = None
    code = ""
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        code = _error_code(exc)
    if (
        isinstance(exc, NoCredentialsError)
        or code in _AUTH_CODES
        or status in (401, 403)
        or any(c in str(exc) for c in _AUTH_CODES)
    ):
        return UploadError(f"authentication failure: {exc}", status=status)
    return UploadError(f"{action}: {exc}", status=status)
