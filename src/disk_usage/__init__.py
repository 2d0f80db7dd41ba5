"""Per-owner disk usage from S3 inventory reports."""

from .config import DiskUsageConfig
from .errors import (
    ColumnarMalformedError,
    DiskUsageError,
    InconsistentColumnsError,
    InventoryPathError,
    ManifestMalformedError,
    ManifestNotFoundError,
    ObjectNotFoundError,
    StorageTransportError,
    UsageNotFoundError,
    reason_code,
)
from .handler import DiskUsageHandler
from .models import CycleMetrics, FileDescriptor, Manifest, UsageRecord, UsageSnapshot

__all__ = [
    "ColumnarMalformedError",
    "CycleMetrics",
    "DiskUsageConfig",
    "DiskUsageError",
    "DiskUsageHandler",
    "FileDescriptor",
    "InconsistentColumnsError",
    "InventoryPathError",
    "Manifest",
    "ManifestMalformedError",
    "ManifestNotFoundError",
    "ObjectNotFoundError",
    "StorageTransportError",
    "UsageNotFoundError",
    "UsageRecord",
    "UsageSnapshot",
    "reason_code",
]
