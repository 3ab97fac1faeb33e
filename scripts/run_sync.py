#!/usr/bin/env python3
"""CLI entry point for syncing an analytics export.

Usage:
    # Sync an export file
    PYTHONPATH=. python scripts/run_sync.py exports/2024-12.csv

    # Explicit batch id, debug logging
    PYTHONPATH=. python scripts/run_sync.py exports/2024-12.csv --batch-id dec-2024 -v
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.revshare_core.attribution.exceptions import (
    OwnershipUnavailableError,
    SyncLockedError,
)
from src.revshare_core.sync.service import sync_service_from_env


EXPORT_FIELDS = (
    "date",
    "channelId",
    "videoTitle",
    "country",
    "views",
    "premiumViews",
    "grossRevenue",
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def read_export(path: Path) -> list[dict]:
    """Parse an export file into raw records.

    The header row is skipped when the first line mentions 'date'; lines
    with fewer than seven comma-separated fields are ignored.
    """
    lines = path.read_text(encoding="utf-8").splitlines()
    if not lines:
        return []

    start = 1 if "date" in lines[0].lower() else 0
    records: list[dict] = []

    for line in lines[start:]:
        line = line.strip()
        if not line:
            continue
        parts = line.split(",")
        if len(parts) < len(EXPORT_FIELDS):
            continue
        records.append(
            {name: value.strip() for name, value in zip(EXPORT_FIELDS, parts)}
        )

    return records


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Revshare export sync")
    parser.add_argument("export", type=Path, help="Export CSV file")
    parser.add_argument("--batch-id", type=str, help="Batch identifier")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    records = read_export(args.export)
    if not records:
        logging.error("No valid data rows found in %s", args.export)
        return 1

    try:
        async with sync_service_from_env() as service:
            report = await service.run_batch(records, batch_id=args.batch_id)
    except (OwnershipUnavailableError, SyncLockedError) as exc:
        logging.error("Sync aborted: %s", exc)
        return 1

    print(f"Sync complete: {report.summary()}")
    return 0 if report.committed and not report.failed_keys else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
