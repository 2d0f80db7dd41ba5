"""Blob fetchers for inventory manifests and data files (local + S3-compatible)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from .errors import ObjectNotFoundError, StorageTransportError

if TYPE_CHECKING:
    from .config import DiskUsageConfig


_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobFetcher(Protocol):
    def fetch(self, bucket: str, key: str) -> bytes:
        """Return the object's bytes.

        Raises ObjectNotFoundError when the key is absent and
        StorageTransportError for every other failure.
        """
        ...


class LocalBlobFetcher:
    """Reads ``<root>/<bucket>/<key>``; buckets are plain directories."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _full_path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / key.lstrip("/")

    def fetch(self, bucket: str, key: str) -> bytes:
        path = self._full_path(bucket, key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            if not (self.root / bucket).is_dir():
                raise StorageTransportError(f"NoSuchBucket:{bucket}") from exc
            raise ObjectNotFoundError(f"{bucket}/{key}") from exc
        except OSError as exc:
            raise StorageTransportError(f"{type(exc).__name__}:{bucket}/{key}") from exc


class S3BlobFetcher:
    def __init__(
        self,
        *,
        region_name: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
        endpoint_url: str | None = None,
        path_style: bool | None = None,
        client=None,
    ) -> None:
        if client is None:
            import boto3
            from botocore.config import Config

            config = None
            if path_style:
                config = Config(s3={"addressing_style": "path"})
            client = boto3.client(
                "s3",
                region_name=region_name,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                aws_session_token=session_token,
                endpoint_url=endpoint_url,
                config=config,
            )
        self._client = client

    def fetch(self, bucket: str, key: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            error_code = str(exc.response.get("Error", {}).get("Code") or "")
            if error_code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"s3://{bucket}/{key}") from exc
            raise StorageTransportError(f"{error_code or 'ClientError'}:s3://{bucket}/{key}") from exc
        except BotoCoreError as exc:
            raise StorageTransportError(f"{type(exc).__name__}:s3://{bucket}/{key}") from exc


def build_blob_fetcher(config: "DiskUsageConfig") -> BlobFetcher:
    if config.local_root:
        return LocalBlobFetcher(Path(config.local_root))
    return S3BlobFetcher(
        region_name=config.region,
        access_key_id=config.access_key_id,
        secret_access_key=config.secret_access_key,
        session_token=config.session_token,
        endpoint_url=config.endpoint_url,
        path_style=config.path_style,
    )
