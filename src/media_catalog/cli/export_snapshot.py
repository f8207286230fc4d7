"""
CLI for exporting approved records from MongoDB into a static snapshot file.
The snapshot is what the API serves from when the primary store is down.
"""

import argparse
import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from media_catalog.db.connection import MongoConnection
from media_catalog.io.writers import write_records
from media_catalog.logging_setup import setup_logging
from media_catalog.settings import get_settings

logger = logging.getLogger(__name__)


def sanitize_record(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the store-internal _id, default `approved`, serialize timestamps as ISO 8601"""
    record = {k: v for k, v in doc.items() if k != "_id"}
    if record.get("approved") is None:
        record["approved"] = True
    added = record.get("date_added")
    if isinstance(added, datetime):
        # The driver returns naive UTC datetimes
        if added.tzinfo is None:
            added = added.replace(tzinfo=timezone.utc)
        record["date_added"] = added.isoformat()
    return record


async def export_snapshot(collection, out: Path) -> List[Dict[str, Any]]:
    """Read every approved record ordered by date_added and write it to `out`"""
    cursor = collection.find({"approved": True}, {"_id": 0}).sort([("date_added", 1), ("id", 1)])
    records = [sanitize_record(doc) for doc in await cursor.to_list(None)]
    write_records(records, out)
    logger.info(f"Exported {len(records)} records to {out}")
    return records


async def _run(out: Path) -> int:
    cfg = get_settings()
    connection = MongoConnection(cfg.mongo)
    status = await connection.connect()
    if not status.connected:
        logger.error(f"Cannot export: primary store unavailable ({status.error})")
        return 1
    try:
        await export_snapshot(connection.collection(), out)
    finally:
        await connection.close()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Export approved records from MongoDB into a static snapshot (.json, .jsonl or .parquet)"
    )

    cfg = get_settings()

    parser.add_argument(
        "--out",
        type=Path,
        default=cfg.snapshot_path,
        help="Snapshot file to write (format chosen by suffix)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: APP_LOG_LEVEL or INFO)"
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    raise SystemExit(asyncio.run(_run(args.out)))


if __name__ == "__main__":
    main()
