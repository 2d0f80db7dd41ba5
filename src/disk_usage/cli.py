"""Disk usage CLI (one-shot refresh, lookup, long-running refresher)."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import time

from .config import DiskUsageConfig
from .handler import DiskUsageHandler
from .logging_utils import configure_logging


logger = logging.getLogger("disk_usage.cli")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="S3 inventory disk usage refresher")
    parser.add_argument("--profile", required=True, help="Path to disk usage profile YAML")
    parser.add_argument("--once", action="store_true", help="Run one refresh cycle and print its metrics")
    parser.add_argument("--lookup", action="append", default=[], help="Owner key to print after one refresh cycle")
    parser.add_argument("--serve", action="store_true", help="Refresh on the configured period until interrupted")
    args = parser.parse_args(argv)

    config = DiskUsageConfig.load(Path(args.profile))
    configure_logging(config.log_level, list(config.log_paths))

    if args.serve:
        with DiskUsageHandler(config) as handler:
            try:
                while True:
                    time.sleep(1.0)
            except KeyboardInterrupt:
                logger.info("Interrupted; stopping refresher")
        return 0

    if not (args.once or args.lookup):
        raise SystemExit("Provide --once, --lookup or --serve")

    handler = DiskUsageHandler(config, autostart=False)
    metrics = handler.refresh_now()
    if args.once and metrics is not None:
        print(json.dumps(metrics.as_dict(), sort_keys=True, ensure_ascii=True))
    missing = 0
    for owner_key in args.lookup:
        record = handler.publisher.lookup(owner_key)
        if record is None:
            missing += 1
            print(json.dumps({"owner_key": owner_key, "status": "NOT_FOUND"}, ensure_ascii=True))
        else:
            print(json.dumps(record.as_dict(), ensure_ascii=True))
    return 1 if missing else 0


if __name__ == "__main__":
    raise SystemExit(main())
