"""Inventory manifest and usage snapshot contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from .errors import ManifestMalformedError


PARQUET_FORMAT = "parquet"


@dataclass(frozen=True)
class FileDescriptor:
    key: str
    size: int
    md5_checksum: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FileDescriptor":
        if not isinstance(payload, Mapping):
            raise ManifestMalformedError("files[] entry must be an object")
        key = payload.get("key")
        if not isinstance(key, str) or not key:
            raise ManifestMalformedError("files[].key is required")
        size = payload.get("size")
        if isinstance(size, bool) or not isinstance(size, int):
            raise ManifestMalformedError(f"files[].size must be an integer for {key}")
        checksum = payload.get("MD5checksum") or ""
        if not isinstance(checksum, str):
            raise ManifestMalformedError(f"files[].MD5checksum must be a string for {key}")
        return cls(key=key, size=size, md5_checksum=checksum)

    def as_dict(self) -> dict[str, Any]:
        return {"key": self.key, "size": self.size, "MD5checksum": self.md5_checksum}


@dataclass(frozen=True)
class Manifest:
    """S3 inventory manifest.json.

    Example::

        {
            "sourceBucket": "example-source-bucket",
            "destinationBucket": "arn:aws:s3:::example-destination-bucket",
            "version": "2016-11-30",
            "creationTimestamp": "1514944800000",
            "fileFormat": "Parquet",
            "fileSchema": "message s3.inventory { required binary bucket (UTF8); ... }",
            "files": [
                {
                    "key": "inventory/example-source-bucket/data/d754c470.parquet",
                    "size": 56291,
                    "MD5checksum": "5825f2e18e1695c2d030b9f6eexample"
                }
            ]
        }

    See https://docs.aws.amazon.com/AmazonS3/latest/userguide/storage-inventory-location.html
    """

    source_bucket: str
    destination_bucket: str
    version: str
    creation_timestamp: str
    file_format: str
    file_schema: str
    files: tuple[FileDescriptor, ...]

    @classmethod
    def from_payload(cls, payload: Any) -> "Manifest":
        if not isinstance(payload, Mapping):
            raise ManifestMalformedError("manifest must be a JSON object")
        source_bucket = payload.get("sourceBucket")
        if not isinstance(source_bucket, str) or not source_bucket:
            raise ManifestMalformedError("sourceBucket is required")
        files = payload.get("files")
        if not isinstance(files, list):
            raise ManifestMalformedError("files must be a list")
        return cls(
            source_bucket=source_bucket,
            destination_bucket=_optional_text(payload, "destinationBucket"),
            version=_optional_text(payload, "version"),
            creation_timestamp=_optional_text(payload, "creationTimestamp"),
            file_format=_optional_text(payload, "fileFormat"),
            file_schema=_optional_text(payload, "fileSchema"),
            files=tuple(FileDescriptor.from_payload(item) for item in files),
        )

    @property
    def is_parquet(self) -> bool:
        return self.file_format.strip().lower() == PARQUET_FORMAT

    def as_dict(self) -> dict[str, Any]:
        return {
            "sourceBucket": self.source_bucket,
            "destinationBucket": self.destination_bucket,
            "version": self.version,
            "creationTimestamp": self.creation_timestamp,
            "fileFormat": self.file_format,
            "fileSchema": self.file_schema,
            "files": [item.as_dict() for item in self.files],
        }


@dataclass(frozen=True)
class UsageRecord:
    owner_key: str
    size_bytes: int
    file_count: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "owner_key": self.owner_key,
            "size_bytes": self.size_bytes,
            "file_count": self.file_count,
        }


class UsageSnapshot(Mapping[str, UsageRecord]):
    """Immutable owner_key -> UsageRecord view, published as a whole."""

    __slots__ = ("_records", "manifest_key", "source_bucket", "generated_at_utc", "files_total", "files_aggregated")

    def __init__(
        self,
        records: Mapping[str, UsageRecord] | None = None,
        *,
        manifest_key: str | None = None,
        source_bucket: str | None = None,
        generated_at_utc: str | None = None,
        files_total: int = 0,
        files_aggregated: int = 0,
    ) -> None:
        self._records = MappingProxyType(dict(records or {}))
        self.manifest_key = manifest_key
        self.source_bucket = source_bucket
        self.generated_at_utc = generated_at_utc or utc_now()
        self.files_total = files_total
        self.files_aggregated = files_aggregated

    @classmethod
    def empty(cls) -> "UsageSnapshot":
        return cls()

    def __getitem__(self, owner_key: str) -> UsageRecord:
        return self._records[owner_key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"UsageSnapshot(owners={len(self._records)}, manifest_key={self.manifest_key!r}, "
            f"generated_at_utc={self.generated_at_utc!r})"
        )

    def summary(self) -> dict[str, Any]:
        return {
            "owners": len(self._records),
            "manifest_key": self.manifest_key,
            "source_bucket": self.source_bucket,
            "generated_at_utc": self.generated_at_utc,
            "files_total": self.files_total,
            "files_aggregated": self.files_aggregated,
        }


CYCLE_PUBLISHED = "PUBLISHED"
CYCLE_RESOLVE_FAILED = "RESOLVE_FAILED"
CYCLE_ABANDONED = "ABANDONED"

_CYCLE_COUNTERS = ("files_total", "files_aggregated", "files_failed", "rows_total", "rows_skipped")


@dataclass
class CycleMetrics:
    started_at_utc: str = field(default_factory=lambda: utc_now())
    finished_at_utc: str | None = None
    status: str | None = None
    reason_code: str | None = None
    manifest_key: str | None = None
    used_fallback: bool = False
    failures: dict[str, str] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key in _CYCLE_COUNTERS:
            self.counters.setdefault(key, 0)

    def bump(self, key: str, delta: int = 1) -> None:
        if key not in self.counters:
            raise ValueError(f"unsupported metric counter: {key}")
        self.counters[key] = int(self.counters.get(key, 0)) + int(delta)

    def finish(self, status: str, reason: str | None = None) -> "CycleMetrics":
        self.status = status
        self.reason_code = reason
        self.finished_at_utc = utc_now()
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "status": self.status,
            "reason_code": self.reason_code,
            "manifest_key": self.manifest_key,
            "used_fallback": self.used_fallback,
            "failures": dict(self.failures),
            "metrics": dict(self.counters),
        }


def utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _optional_text(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ManifestMalformedError(f"{name} must be a string")
    return value
