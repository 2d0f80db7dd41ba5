"""Inventory manifest resolution.

Inventory reports land once a day under
``<destination-prefix>/<source-bucket>/<config-id>/<YYYY-MM-DDTHH-MMZ>/manifest.json``.
The resolver pins the timestamp to the daily cutoff hour and, when today's
report has not been delivered yet, falls back to the previous day exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import json
import logging

from .errors import (
    InventoryPathError,
    ManifestMalformedError,
    ManifestNotFoundError,
    ObjectNotFoundError,
)
from .models import Manifest
from .store import BlobFetcher


logger = logging.getLogger("disk_usage.manifest")

MANIFEST_NAME = "manifest.json"
_STAMP_FORMAT = "%Y-%m-%dT%H-%MZ"


@dataclass(frozen=True)
class InventoryLocation:
    bucket: str
    prefix: str

    @classmethod
    def parse(cls, path: str) -> "InventoryLocation":
        """Split ``[s3://]bucket/item/prefix`` into bucket and item prefix."""
        raw = str(path or "").strip()
        if raw.startswith("s3://"):
            raw = raw[len("s3://"):]
        parts = raw.split("/", 1)
        if len(parts) != 2:
            raise InventoryPathError(f"invalid inventory path (expected bucket/prefix): {path!r}")
        bucket, prefix = parts[0].strip(), parts[1].strip().strip("/")
        if not bucket or not prefix:
            raise InventoryPathError(f"invalid inventory path (expected bucket/prefix): {path!r}")
        return cls(bucket=bucket, prefix=prefix)


@dataclass(frozen=True)
class FetchOutcome:
    key: str
    data: bytes | None

    @property
    def found(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class ManifestResolution:
    manifest: Manifest
    manifest_key: str
    used_fallback: bool


def normalize_to_cutoff(instant: datetime, cutoff_hour: int = 1) -> datetime:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    instant = instant.astimezone(timezone.utc)
    return instant.replace(hour=cutoff_hour, minute=0, second=0, microsecond=0)


def manifest_key_for(
    prefix: str,
    instant: datetime,
    cutoff_hour: int = 1,
    manifest_name: str = MANIFEST_NAME,
) -> str:
    stamp = normalize_to_cutoff(instant, cutoff_hour).strftime(_STAMP_FORMAT)
    return f"{prefix.rstrip('/')}/{stamp}/{manifest_name}"


def decode_manifest(data: bytes, *, source: str = "") -> Manifest:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestMalformedError(f"{source}: {exc}") from exc
    manifest = Manifest.from_payload(payload)
    if not manifest.is_parquet:
        raise ManifestMalformedError(
            f"{source}: fileFormat={manifest.file_format!r}",
            code="UNSUPPORTED_FILE_FORMAT",
        )
    return manifest


class ManifestResolver:
    def __init__(
        self,
        fetcher: BlobFetcher,
        location: InventoryLocation | str,
        *,
        cutoff_hour: int = 1,
        manifest_name: str = MANIFEST_NAME,
    ) -> None:
        if isinstance(location, str):
            location = InventoryLocation.parse(location)
        self.fetcher = fetcher
        self.location = location
        self.cutoff_hour = cutoff_hour
        self.manifest_name = manifest_name

    def candidate_keys(self, now: datetime) -> tuple[str, str]:
        primary = normalize_to_cutoff(now, self.cutoff_hour)
        previous = primary - timedelta(days=1)
        return (
            manifest_key_for(self.location.prefix, primary, self.cutoff_hour, self.manifest_name),
            manifest_key_for(self.location.prefix, previous, self.cutoff_hour, self.manifest_name),
        )

    def resolve(self, now: datetime | None = None) -> ManifestResolution:
        now = now or datetime.now(tz=timezone.utc)
        primary_key, fallback_key = self.candidate_keys(now)

        outcome = self._try_fetch(primary_key)
        used_fallback = False
        if not outcome.found:
            logger.info(
                "Inventory manifest absent bucket=%s key=%s; trying previous day key=%s",
                self.location.bucket,
                primary_key,
                fallback_key,
            )
            outcome = self._try_fetch(fallback_key)
            used_fallback = True
        if not outcome.found:
            raise ManifestNotFoundError(f"{self.location.bucket}: {primary_key}, {fallback_key}")

        manifest = decode_manifest(outcome.data or b"", source=f"s3://{self.location.bucket}/{outcome.key}")
        logger.info(
            "Inventory manifest resolved key=%s files=%d source_bucket=%s fallback=%s",
            outcome.key,
            len(manifest.files),
            manifest.source_bucket,
            used_fallback,
        )
        return ManifestResolution(manifest=manifest, manifest_key=outcome.key, used_fallback=used_fallback)

    def _try_fetch(self, key: str) -> FetchOutcome:
        # only absence is folded into the outcome; transport/auth errors propagate
        try:
            return FetchOutcome(key=key, data=self.fetcher.fetch(self.location.bucket, key))
        except ObjectNotFoundError:
            return FetchOutcome(key=key, data=None)
