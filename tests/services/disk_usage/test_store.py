from __future__ import annotations

import io

from botocore.exceptions import ClientError, EndpointConnectionError
import pytest

from disk_usage.config import DiskUsageConfig
from disk_usage.errors import ObjectNotFoundError, StorageTransportError
from disk_usage.store import LocalBlobFetcher, S3BlobFetcher, build_blob_fetcher


class StubClient:
    def __init__(self, objects: dict[tuple[str, str], bytes], error_codes: dict[str, str] | None = None) -> None:
        self.objects = objects
        self.error_codes = error_codes or {}

    def get_object(self, Bucket: str, Key: str):  # noqa: N803
        code = self.error_codes.get(Key)
        if code == "ENDPOINT":
            raise EndpointConnectionError(endpoint_url="https://s3.example.invalid")
        if code:
            raise ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}


def test_s3_fetcher_returns_body_bytes() -> None:
    fetcher = S3BlobFetcher(client=StubClient({("bucket", "inv/manifest.json"): b"{}"}))
    assert fetcher.fetch("bucket", "inv/manifest.json") == b"{}"


@pytest.mark.parametrize("code", ["NoSuchKey", "404", "NotFound"])
def test_s3_fetcher_maps_absent_key_to_not_found(code: str) -> None:
    fetcher = S3BlobFetcher(client=StubClient({}, error_codes={"inv/manifest.json": code}))
    with pytest.raises(ObjectNotFoundError):
        fetcher.fetch("bucket", "inv/manifest.json")


@pytest.mark.parametrize("code", ["NoSuchBucket", "AccessDenied", "InvalidAccessKeyId", "ENDPOINT"])
def test_s3_fetcher_maps_other_failures_to_transport(code: str) -> None:
    fetcher = S3BlobFetcher(client=StubClient({}, error_codes={"inv/manifest.json": code}))
    with pytest.raises(StorageTransportError) as excinfo:
        fetcher.fetch("bucket", "inv/manifest.json")
    assert not isinstance(excinfo.value, ObjectNotFoundError)
    assert excinfo.value.code == "STORAGE_TRANSPORT"


def test_s3_fetcher_builds_boto_client_with_static_credentials(monkeypatch) -> None:
    captured: dict = {}

    def fake_client(service: str, **kwargs):
        captured["service"] = service
        captured.update(kwargs)
        return StubClient({})

    monkeypatch.setattr("boto3.client", fake_client)
    S3BlobFetcher(
        region_name="eu-central-1",
        access_key_id="AKIAEXAMPLE",
        secret_access_key="secret",
        endpoint_url="http://localhost:4566",
        path_style=True,
    )
    assert captured["service"] == "s3"
    assert captured["region_name"] == "eu-central-1"
    assert captured["aws_access_key_id"] == "AKIAEXAMPLE"
    assert captured["aws_secret_access_key"] == "secret"
    assert captured["endpoint_url"] == "http://localhost:4566"
    assert captured["config"].s3 == {"addressing_style": "path"}


def test_local_fetcher_distinguishes_missing_key_and_bucket(tmp_path) -> None:
    target = tmp_path / "bucket" / "inv" / "manifest.json"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"{}")
    fetcher = LocalBlobFetcher(tmp_path)

    assert fetcher.fetch("bucket", "inv/manifest.json") == b"{}"
    with pytest.raises(ObjectNotFoundError):
        fetcher.fetch("bucket", "inv/other.json")
    with pytest.raises(StorageTransportError) as excinfo:
        fetcher.fetch("no-such-bucket", "inv/manifest.json")
    assert not isinstance(excinfo.value, ObjectNotFoundError)


def test_build_blob_fetcher_prefers_local_root(tmp_path) -> None:
    config = DiskUsageConfig(inventory_path="bucket/inv", local_root=str(tmp_path))
    fetcher = build_blob_fetcher(config)
    assert isinstance(fetcher, LocalBlobFetcher)
    assert fetcher.root == tmp_path
