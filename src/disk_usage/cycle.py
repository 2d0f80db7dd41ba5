"""One refresh cycle: resolve manifest, aggregate data files, publish snapshot."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Iterator

from .aggregator import DEFAULT_BATCH_SIZE, FileAggregate, UsageAccumulator, aggregate_file
from .errors import ColumnarMalformedError, DiskUsageError, reason_code
from .manifest import ManifestResolver
from .models import (
    CYCLE_ABANDONED,
    CYCLE_PUBLISHED,
    CYCLE_RESOLVE_FAILED,
    CycleMetrics,
    FileDescriptor,
)
from .snapshot import SnapshotPublisher
from .store import BlobFetcher


logger = logging.getLogger("disk_usage.cycle")


class UsageRefreshCycle:
    def __init__(
        self,
        resolver: ManifestResolver,
        fetcher: BlobFetcher,
        publisher: SnapshotPublisher,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_workers: int = 1,
        verify_checksums: bool = True,
        data_bucket: str | None = None,
        status_path: str | None = None,
        should_abort: Callable[[], bool] | None = None,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.publisher = publisher
        self.batch_size = batch_size
        self.max_workers = max(1, int(max_workers))
        self.verify_checksums = verify_checksums
        self.data_bucket = data_bucket
        self.status_path = status_path
        self._should_abort = should_abort or (lambda: False)
        self.last_metrics: CycleMetrics | None = None

    def run(self, now: datetime | None = None) -> CycleMetrics:
        metrics = CycleMetrics()
        try:
            resolution = self.resolver.resolve(now)
        except DiskUsageError as exc:
            logger.warning(
                "Usage cycle abandoned; keeping previous snapshot reason=%s error=%s",
                reason_code(exc),
                exc,
            )
            return self._finish(metrics.finish(CYCLE_RESOLVE_FAILED, reason_code(exc)))

        metrics.manifest_key = resolution.manifest_key
        metrics.used_fallback = resolution.used_fallback
        files = resolution.manifest.files
        bucket = self.data_bucket or resolution.manifest.source_bucket
        metrics.bump("files_total", len(files))

        accumulator = UsageAccumulator()
        for descriptor, outcome in self._process_all(bucket, files):
            if isinstance(outcome, FileAggregate):
                accumulator.merge(outcome.accumulator)
                metrics.bump("files_aggregated")
            else:
                metrics.bump("files_failed")
                metrics.failures[descriptor.key] = outcome
            if self._should_abort():
                break

        if self._should_abort():
            logger.info("Usage cycle abandoned on shutdown manifest_key=%s", resolution.manifest_key)
            return self._finish(metrics.finish(CYCLE_ABANDONED, "SHUTDOWN"))

        metrics.bump("rows_total", accumulator.rows_total)
        metrics.bump("rows_skipped", accumulator.rows_skipped)
        snapshot = accumulator.freeze(
            manifest_key=resolution.manifest_key,
            source_bucket=bucket,
            files_total=len(files),
            files_aggregated=metrics.counters["files_aggregated"],
        )
        self.publisher.publish(snapshot)
        return self._finish(metrics.finish(CYCLE_PUBLISHED))

    def _process_all(
        self,
        bucket: str,
        files: Iterable[FileDescriptor],
    ) -> Iterator[tuple[FileDescriptor, FileAggregate | str]]:
        files = list(files)
        if self.max_workers <= 1 or len(files) <= 1:
            for descriptor in files:
                if self._should_abort():
                    return
                yield descriptor, self._process_file(bucket, descriptor)
            return
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(files))) as executor:
            futures = {executor.submit(self._process_file, bucket, descriptor): descriptor for descriptor in files}
            try:
                for future in as_completed(futures):
                    yield futures[future], future.result()
            finally:
                for future in futures:
                    future.cancel()

    def _process_file(self, bucket: str, descriptor: FileDescriptor) -> FileAggregate | str:
        """Aggregate one data file; failures come back as a reason code."""
        if self._should_abort():
            return "SHUTDOWN"
        logger.info("Inventory data file key=%s size=%d", descriptor.key, descriptor.size)
        try:
            data = self.fetcher.fetch(bucket, descriptor.key)
            if self.verify_checksums:
                _verify_md5(descriptor, data)
            return aggregate_file(descriptor.key, data, batch_size=self.batch_size)
        except DiskUsageError as exc:
            logger.warning(
                "Skipping inventory data file bucket=%s key=%s reason=%s error=%s",
                bucket,
                descriptor.key,
                reason_code(exc),
                exc,
            )
            return reason_code(exc)
        except Exception:
            logger.exception("Inventory data file failed bucket=%s key=%s", bucket, descriptor.key)
            return "INTERNAL_ERROR"

    def _finish(self, metrics: CycleMetrics) -> CycleMetrics:
        self.last_metrics = metrics
        logger.info(
            "Usage cycle finished status=%s reason=%s manifest_key=%s fallback=%s metrics=%s",
            metrics.status,
            metrics.reason_code,
            metrics.manifest_key,
            metrics.used_fallback,
            metrics.counters,
        )
        if self.status_path:
            _write_status(Path(self.status_path), metrics)
        return metrics


def _verify_md5(descriptor: FileDescriptor, data: bytes) -> None:
    expected = descriptor.md5_checksum.strip().lower()
    if not expected:
        return
    actual = hashlib.md5(data).hexdigest()
    if actual != expected:
        raise ColumnarMalformedError(
            f"{descriptor.key}: expected={expected} actual={actual}",
            code="CHECKSUM_MISMATCH",
        )


def _write_status(path: Path, metrics: CycleMetrics) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(metrics.as_dict(), sort_keys=True, ensure_ascii=True, indent=2) + "\n",
            encoding="utf-8",
        )
        os.replace(tmp_path, path)
    except OSError:
        logger.exception("Usage cycle status export failed path=%s", path)
