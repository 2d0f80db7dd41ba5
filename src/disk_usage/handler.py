"""Disk usage handler: wiring for the refresh cycle and the lookup surface."""

from __future__ import annotations

from datetime import datetime

from .config import DiskUsageConfig
from .cycle import UsageRefreshCycle
from .errors import UsageNotFoundError
from .manifest import ManifestResolver
from .models import CycleMetrics, UsageRecord, UsageSnapshot
from .scheduler import PeriodicScheduler
from .snapshot import SnapshotPublisher
from .store import BlobFetcher, build_blob_fetcher


class DiskUsageHandler:
    """Keeps per-owner usage from the latest S3 inventory report in memory.

    ``start`` runs the first refresh cycle on the calling thread, so lookups
    see the first snapshot once it returns. Later cycles run in the background
    every ``refresh_period_seconds``. ``stop`` must be called by the owner of
    the handler (or use it as a context manager).
    """

    def __init__(
        self,
        config: DiskUsageConfig,
        *,
        fetcher: BlobFetcher | None = None,
        autostart: bool = True,
    ) -> None:
        self.config = config
        self.fetcher = fetcher or build_blob_fetcher(config)
        self.publisher = SnapshotPublisher()
        self.resolver = ManifestResolver(
            self.fetcher,
            config.location,
            cutoff_hour=config.cutoff_hour,
        )
        self.scheduler = PeriodicScheduler(self._run_cycle, config.refresh_period_seconds)
        self.cycle = UsageRefreshCycle(
            self.resolver,
            self.fetcher,
            self.publisher,
            batch_size=config.batch_size,
            max_workers=config.max_workers,
            verify_checksums=config.verify_checksums,
            data_bucket=config.data_bucket,
            status_path=config.status_path,
            should_abort=self._stop_requested,
        )
        if autostart:
            self.start()

    @classmethod
    def from_credentials(
        cls,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        inventory_path: str,
        refresh_period_seconds: int,
        **kwargs,
    ) -> "DiskUsageHandler":
        """Build a handler for ``inventory_path`` of the form ``bucket/path/inventory``.

        See https://docs.aws.amazon.com/AmazonS3/latest/userguide/storage-inventory-location.html
        """
        autostart = kwargs.pop("autostart", True)
        fetcher = kwargs.pop("fetcher", None)
        config = DiskUsageConfig(
            inventory_path=inventory_path,
            refresh_period_seconds=refresh_period_seconds,
            region=region,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            **kwargs,
        )
        return cls(config, fetcher=fetcher, autostart=autostart)

    def __enter__(self) -> "DiskUsageHandler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.trigger()
        self.scheduler.start(run_immediately=False)

    def stop(self, timeout: float | None = None) -> bool:
        return self.scheduler.stop(timeout)

    def refresh_now(self, now: datetime | None = None) -> CycleMetrics | None:
        """Run one cycle synchronously; None when a cycle is already running."""
        ran, metrics = self.scheduler.run_now(lambda: self.cycle.run(now))
        return metrics if ran else None

    def get_disk_usage(self, owner_key: str) -> UsageRecord:
        record = self.publisher.lookup(owner_key)
        if record is None:
            raise UsageNotFoundError(owner_key)
        return record

    @property
    def snapshot(self) -> UsageSnapshot:
        return self.publisher.current()

    @property
    def last_metrics(self) -> CycleMetrics | None:
        return self.cycle.last_metrics

    def _run_cycle(self) -> CycleMetrics:
        return self.cycle.run()

    def _stop_requested(self) -> bool:
        # Only background cycles are abandoned; refresh_now always finishes.
        return self.scheduler.stopping and self.scheduler.on_worker_thread()
