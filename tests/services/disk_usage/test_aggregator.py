from __future__ import annotations

import logging

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from disk_usage import aggregator
from disk_usage.aggregator import UsageAccumulator, aggregate_file, iter_usage_rows, owner_from_key
from disk_usage.errors import ColumnarMalformedError, InconsistentColumnsError
from disk_usage.models import UsageRecord


def _inventory_parquet(keys: list[str | None], sizes: list[int | None]) -> bytes:
    table = pa.table(
        {
            "bucket": pa.array(["mail-attachments"] * len(keys), pa.string()),
            "key": pa.array(keys, pa.string()),
            "size": pa.array(sizes, pa.int64()),
            "storage_class": pa.array(["STANDARD"] * len(keys), pa.string()),
        }
    )
    sink = pa.BufferOutputStream()
    pq.write_table(table, sink)
    return sink.getvalue().to_pybytes()


@pytest.mark.parametrize(
    ("key", "owner"),
    [
        ("alice/inbox/msg1.bin", "alice"),
        ("bob/a.bin", "bob"),
        ("carol/", "carol"),
        ("orphan.bin", None),
        ("/leading-slash.bin", None),
        ("", None),
        (None, None),
    ],
)
def test_owner_from_key(key: str | None, owner: str | None) -> None:
    assert owner_from_key(key) == owner


def test_leading_slash_keys_are_skipped_not_credited_to_empty_owner() -> None:
    data = _inventory_parquet(["/x.bin", "alice/y.bin"], [7, 5])
    result = aggregate_file("inv/data/a.parquet", data)

    records = result.accumulator.records()
    assert "" not in records
    assert records["alice"].size_bytes == 5
    assert result.accumulator.rows_skipped == 1


def test_iter_usage_rows_projects_key_and_size_in_batches() -> None:
    keys = [f"owner{i % 2}/file{i}.bin" for i in range(5)]
    sizes = [10, 20, 30, 40, 50]
    rows = list(iter_usage_rows(_inventory_parquet(keys, sizes), batch_size=2))
    assert rows == list(zip(keys, sizes))


def test_iter_usage_rows_rejects_garbage() -> None:
    with pytest.raises(ColumnarMalformedError):
        list(iter_usage_rows(b"definitely not parquet"))
    with pytest.raises(ColumnarMalformedError):
        list(iter_usage_rows(b""))


def test_iter_usage_rows_requires_size_column() -> None:
    table = pa.table({"key": pa.array(["alice/a.bin"], pa.string())})
    sink = pa.BufferOutputStream()
    pq.write_table(table, sink)
    with pytest.raises(ColumnarMalformedError) as excinfo:
        list(iter_usage_rows(sink.getvalue().to_pybytes()))
    assert "size" in str(excinfo.value)


def test_iter_usage_rows_detects_column_length_mismatch(monkeypatch) -> None:
    class StubColumn:
        def __init__(self, values: list) -> None:
            self.values = values

        def to_pylist(self) -> list:
            return list(self.values)

    class StubBatch:
        def column(self, name: str) -> StubColumn:
            if name == "key":
                return StubColumn(["alice/a.bin", "alice/b.bin"])
            return StubColumn([1])

    class StubSchema:
        names = ["bucket", "key", "size"]

    class StubParquetFile:
        schema_arrow = StubSchema()

        def __init__(self, source) -> None:
            self.source = source

        def iter_batches(self, batch_size: int, columns: list[str]):
            return iter([StubBatch()])

    monkeypatch.setattr(aggregator.pq, "ParquetFile", StubParquetFile)
    with pytest.raises(InconsistentColumnsError):
        list(iter_usage_rows(b"PAR1"))


def test_aggregate_file_sums_per_owner_and_skips_orphans(caplog) -> None:
    data = _inventory_parquet(
        ["alice/inbox/msg1.bin", "alice/inbox/msg2.bin", "bob/sent/x.bin", "orphan.bin"],
        [100, 250, 7, 999],
    )
    with caplog.at_level(logging.WARNING, logger="disk_usage.aggregator"):
        result = aggregate_file("data/a1.parquet", data)

    records = result.accumulator.records()
    assert records["alice"] == UsageRecord(owner_key="alice", size_bytes=350, file_count=2)
    assert records["bob"] == UsageRecord(owner_key="bob", size_bytes=7, file_count=1)
    assert "orphan.bin" not in records
    assert result.accumulator.rows_total == 4
    assert result.accumulator.rows_skipped == 1
    assert "orphan.bin" in caplog.text


def test_aggregate_file_counts_null_size_as_zero_bytes() -> None:
    data = _inventory_parquet(["alice/deleted.bin", "alice/kept.bin", None], [None, 5, 3])
    records = aggregate_file("data/nulls.parquet", data).accumulator.records()
    assert records == {"alice": UsageRecord(owner_key="alice", size_bytes=5, file_count=2)}


def test_accumulator_merge_across_files() -> None:
    first = aggregate_file("a.parquet", _inventory_parquet(["alice/a.bin"], [100])).accumulator
    second = aggregate_file("b.parquet", _inventory_parquet(["alice/b.bin", "bob/c.bin"], [250, 1])).accumulator

    cycle = UsageAccumulator()
    cycle.merge(first)
    cycle.merge(second)

    snapshot = cycle.freeze(manifest_key="inv/2024-05-10T01-00Z/manifest.json")
    assert snapshot["alice"] == UsageRecord(owner_key="alice", size_bytes=350, file_count=2)
    assert snapshot["bob"].file_count == 1
    assert snapshot.manifest_key == "inv/2024-05-10T01-00Z/manifest.json"
    assert cycle.rows_total == 3


def test_frozen_snapshot_is_read_only() -> None:
    accumulator = UsageAccumulator()
    accumulator.add("alice", 10)
    snapshot = accumulator.freeze()
    accumulator.add("alice", 10)

    assert snapshot["alice"].size_bytes == 10
    with pytest.raises(TypeError):
        snapshot["mallory"] = UsageRecord(owner_key="mallory", size_bytes=0, file_count=0)  # type: ignore[index]
