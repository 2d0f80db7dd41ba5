"""Disk usage configuration loader (YAML profile + environment)."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Any, Mapping

import yaml

from .manifest import InventoryLocation


_ENV_PATTERN = re.compile(r"^\$\{([^}:]+)(?::-([^}]*))?\}$")
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DiskUsageConfig:
    inventory_path: str
    refresh_period_seconds: int = 3600
    region: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    endpoint_url: str | None = None
    path_style: bool = False
    local_root: str | None = None
    data_bucket: str | None = None
    cutoff_hour: int = 1
    batch_size: int = 1024
    max_workers: int = 1
    verify_checksums: bool = True
    status_path: str | None = None
    log_level: str = "INFO"
    log_paths: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # raises InventoryPathError with the offending path
        InventoryLocation.parse(self.inventory_path)
        if int(self.refresh_period_seconds) <= 0:
            raise ValueError(f"refresh_period_seconds must be > 0, got {self.refresh_period_seconds}")
        if not 0 <= int(self.cutoff_hour) <= 23:
            raise ValueError(f"cutoff_hour must be within 0..23, got {self.cutoff_hour}")
        if int(self.batch_size) <= 0:
            raise ValueError(f"batch_size must be > 0, got {self.batch_size}")
        if int(self.max_workers) < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ValueError("access_key_id and secret_access_key must be set together")

    @property
    def location(self) -> InventoryLocation:
        return InventoryLocation.parse(self.inventory_path)

    @classmethod
    def load(cls, path: Path) -> "DiskUsageConfig":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, Mapping):
            raise ValueError(f"profile must be a mapping: {path}")
        return cls.from_mapping(data.get("disk_usage", data))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DiskUsageConfig":
        inventory = data.get("inventory") or {}
        credentials = data.get("credentials") or {}
        object_store = data.get("object_store") or {}
        refresh = data.get("refresh") or {}
        logging_section = data.get("logging") or {}

        inventory_path = _resolve_env(inventory.get("path") or data.get("inventory_path"))
        if not inventory_path:
            raise ValueError("inventory.path is required")
        log_paths = logging_section.get("paths") or []
        if isinstance(log_paths, str):
            log_paths = [log_paths]
        return cls(
            inventory_path=str(inventory_path),
            refresh_period_seconds=_as_int(refresh.get("period_seconds"), 3600, "refresh.period_seconds"),
            region=_resolve_env(object_store.get("region")),
            access_key_id=_resolve_env(credentials.get("access_key_id")),
            secret_access_key=_resolve_env(credentials.get("secret_access_key")),
            session_token=_resolve_env(credentials.get("session_token")),
            endpoint_url=_resolve_env(object_store.get("endpoint_url")),
            path_style=_as_bool(_resolve_env(object_store.get("path_style"))),
            local_root=_resolve_env(object_store.get("local_root")),
            data_bucket=_resolve_env(inventory.get("data_bucket")),
            cutoff_hour=_as_int(inventory.get("cutoff_hour"), 1, "inventory.cutoff_hour"),
            batch_size=_as_int(refresh.get("batch_size"), 1024, "refresh.batch_size"),
            max_workers=_as_int(refresh.get("max_workers"), 1, "refresh.max_workers"),
            verify_checksums=_as_bool(_resolve_env(refresh.get("verify_checksums")), default=True),
            status_path=_resolve_env(refresh.get("status_path")),
            log_level=str(_resolve_env(logging_section.get("level")) or "INFO"),
            log_paths=tuple(str(_resolve_env(item)) for item in log_paths),
        )


def _resolve_env(value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    match = _ENV_PATTERN.match(value.strip())
    if not match:
        return value
    resolved = os.getenv(match.group(1))
    if resolved in (None, "") and match.group(2) is not None:
        return match.group(2)
    return resolved or None


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _as_int(value: Any, default: int, name: str) -> int:
    value = _resolve_env(value)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
