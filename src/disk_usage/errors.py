"""Disk usage error taxonomy and helpers."""

from __future__ import annotations


class DiskUsageError(RuntimeError):
    """Stable error surfaced as a reason code."""

    code = "DISK_USAGE_ERROR"

    def __init__(self, detail: str | None = None, *, code: str | None = None) -> None:
        self.code = code or type(self).code
        self.detail = detail
        message = f"{self.code}:{detail}" if detail else self.code
        super().__init__(message)


class ObjectNotFoundError(DiskUsageError):
    code = "OBJECT_NOT_FOUND"


class ManifestNotFoundError(DiskUsageError):
    code = "MANIFEST_NOT_FOUND"


class ManifestMalformedError(DiskUsageError):
    code = "MANIFEST_MALFORMED"


class ColumnarMalformedError(DiskUsageError):
    code = "COLUMNAR_MALFORMED"


class InconsistentColumnsError(DiskUsageError):
    code = "COLUMN_LENGTH_MISMATCH"


class StorageTransportError(DiskUsageError):
    code = "STORAGE_TRANSPORT"


class UsageNotFoundError(KeyError):
    """Owner key absent from the current snapshot."""

    code = "NOT_FOUND"

    def __init__(self, owner_key: str) -> None:
        self.owner_key = owner_key
        super().__init__(owner_key)


class InventoryPathError(ValueError):
    """Inventory location does not split into bucket and item prefix."""


def reason_code(exc: BaseException) -> str:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code
    text = str(exc or "").strip()
    if text.isupper():
        return text
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isupper():
            return head
    return "INTERNAL_ERROR"
