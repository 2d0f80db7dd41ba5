"""Parquet inventory decoding and per-owner usage folding."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, Iterator

import pyarrow as pa
import pyarrow.parquet as pq

from .errors import ColumnarMalformedError, InconsistentColumnsError
from .models import UsageRecord, UsageSnapshot


logger = logging.getLogger("disk_usage.aggregator")

KEY_COLUMN = "key"
SIZE_COLUMN = "size"
DEFAULT_BATCH_SIZE = 1024


def iter_usage_rows(data: bytes, batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[tuple[str | None, int | None]]:
    """Yield ``(key, size)`` pairs from an inventory Parquet payload.

    Only the two projected columns are decoded, one record batch at a time.
    """
    try:
        parquet = pq.ParquetFile(pa.BufferReader(data))
    except (pa.ArrowException, OSError, ValueError) as exc:
        raise ColumnarMalformedError(f"unreadable parquet payload: {exc}") from exc
    names = set(parquet.schema_arrow.names)
    missing = [name for name in (KEY_COLUMN, SIZE_COLUMN) if name not in names]
    if missing:
        raise ColumnarMalformedError(f"missing columns: {', '.join(missing)}")

    batches = parquet.iter_batches(batch_size=batch_size, columns=[KEY_COLUMN, SIZE_COLUMN])
    while True:
        try:
            batch = next(batches)
        except StopIteration:
            return
        except (pa.ArrowException, OSError, ValueError) as exc:
            raise ColumnarMalformedError(f"parquet batch decode failed: {exc}") from exc
        # A decoded batch always has equal-length columns; this guards batches
        # from readers that do not enforce it.
        keys = batch.column(KEY_COLUMN).to_pylist()
        sizes = batch.column(SIZE_COLUMN).to_pylist()
        if len(keys) != len(sizes):
            raise InconsistentColumnsError(f"keys={len(keys)} sizes={len(sizes)}")
        yield from zip(keys, sizes)


def owner_from_key(key: str | None) -> str | None:
    """First path segment of an object key, or None when the key has no owner.

    Keys without a "/" have no owner. A leading "/" (empty first segment) is
    treated the same way rather than crediting an owner named "".
    """
    if not key:
        return None
    parts = key.split("/")
    if len(parts) < 2 or not parts[0]:
        return None
    return parts[0]


class UsageAccumulator:
    """Per-cycle owner_key -> (size, count) totals; never shared across cycles."""

    def __init__(self) -> None:
        self._sizes: dict[str, int] = {}
        self._counts: dict[str, int] = {}
        self.rows_total = 0
        self.rows_skipped = 0

    def add(self, owner_key: str, size_bytes: int) -> None:
        self._sizes[owner_key] = self._sizes.get(owner_key, 0) + int(size_bytes)
        self._counts[owner_key] = self._counts.get(owner_key, 0) + 1

    def add_rows(self, rows: Iterable[tuple[str | None, int | None]]) -> None:
        for key, size in rows:
            self.rows_total += 1
            owner = owner_from_key(key)
            if owner is None:
                self.rows_skipped += 1
                logger.warning("Skipping inventory row with invalid object key: %r", key)
                continue
            self.add(owner, size or 0)

    def merge(self, other: "UsageAccumulator") -> None:
        for owner, size in other._sizes.items():
            self._sizes[owner] = self._sizes.get(owner, 0) + size
            self._counts[owner] = self._counts.get(owner, 0) + other._counts[owner]
        self.rows_total += other.rows_total
        self.rows_skipped += other.rows_skipped

    def __len__(self) -> int:
        return len(self._sizes)

    def records(self) -> dict[str, UsageRecord]:
        return {
            owner: UsageRecord(owner_key=owner, size_bytes=size, file_count=self._counts[owner])
            for owner, size in self._sizes.items()
        }

    def freeze(self, **provenance) -> UsageSnapshot:
        return UsageSnapshot(self.records(), **provenance)


@dataclass(frozen=True)
class FileAggregate:
    key: str
    accumulator: UsageAccumulator


def aggregate_file(key: str, data: bytes, batch_size: int = DEFAULT_BATCH_SIZE) -> FileAggregate:
    """Fold one data file into a fresh accumulator.

    Any decode error propagates before the caller sees a partial result.
    """
    accumulator = UsageAccumulator()
    accumulator.add_rows(iter_usage_rows(data, batch_size=batch_size))
    logger.debug(
        "Aggregated inventory file key=%s rows=%d skipped=%d owners=%d",
        key,
        accumulator.rows_total,
        accumulator.rows_skipped,
        len(accumulator),
    )
    return FileAggregate(key=key, accumulator=accumulator)
