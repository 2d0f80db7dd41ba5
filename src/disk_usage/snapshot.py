"""Published usage snapshot handle."""

from __future__ import annotations

import logging
import threading

from .models import UsageRecord, UsageSnapshot


logger = logging.getLogger("disk_usage.snapshot")


class SnapshotPublisher:
    """Single reference to the current UsageSnapshot.

    Publishing rebinds the reference; readers load it once per call and never
    lock, so a lookup sees either the old or the new snapshot in full.
    """

    def __init__(self, initial: UsageSnapshot | None = None) -> None:
        self._current = initial if initial is not None else UsageSnapshot.empty()
        self._publish_lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def current(self) -> UsageSnapshot:
        return self._current

    def publish(self, snapshot: UsageSnapshot) -> None:
        if not isinstance(snapshot, UsageSnapshot):
            raise TypeError(f"expected UsageSnapshot, got {type(snapshot).__name__}")
        with self._publish_lock:
            self._current = snapshot
            self._generation += 1
            generation = self._generation
        logger.info(
            "Usage snapshot published generation=%d owners=%d manifest_key=%s",
            generation,
            len(snapshot),
            snapshot.manifest_key,
        )

    def lookup(self, owner_key: str) -> UsageRecord | None:
        return self._current.get(owner_key)
