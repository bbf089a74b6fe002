#!/usr/bin/env python3
"""
Example: Access (Northwind) to MySQL transfer

Usage:
    # Dry run (reads the source, writes nothing)
    python run_transfer.py --dry-run

    # Full transfer, password taken from DBMIGRATE_TARGET_PASSWORD
    python run_transfer.py

    # Resume an interrupted run
    python run_transfer.py --resume data/northwind_snapshot.json
"""

import argparse
import asyncio
import logging
from pathlib import Path

from dbmigrate.models.config import TransferConfig
from dbmigrate.models.transfer import StateChangeEvent, EventType
from dbmigrate.orchestrator import TransferOrchestrator

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('transfer.log')
    ]
)
logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.json"
SNAPSHOT_PATH = "data/northwind_snapshot.json"


def print_progress(event: StateChangeEvent):
    """Print one line per finished item."""
    if event.type in (EventType.COMPLETED, EventType.FAILED, EventType.CANCELLED):
        item = event.item
        print(f"  {item.name}: {item.status.value} ({item.records_transferred}/{item.total_records})")


async def run(config: TransferConfig, resume_from=None):
    orchestrator = TransferOrchestrator.from_config(config)
    orchestrator.subscribe(print_progress)

    session_id = await orchestrator.start_session(config.selection, resume_from=resume_from)
    try:
        snapshot = await orchestrator.wait(session_id)
    finally:
        orchestrator.save_snapshot(session_id, SNAPSHOT_PATH)
        await orchestrator.shutdown()

    print(f"\nStatus: {snapshot.status.value}, overall progress {snapshot.overall_progress:.1f}%")
    failed = [i for i in snapshot.items if i.error]
    for item in failed:
        print(f"  {item.name}: [{item.error.kind.value}] {item.error.message}")
    if failed:
        print(f"\nRe-run with --resume {SNAPSHOT_PATH} to transfer what is left")


def main():
    parser = argparse.ArgumentParser(description="Northwind to MySQL transfer")
    parser.add_argument("--config", default=str(CONFIG_PATH), help="Config file")
    parser.add_argument("--dry-run", action="store_true", help="Read without writing")
    parser.add_argument("--resume", help="Snapshot of an earlier run")
    args = parser.parse_args()

    config = TransferConfig.from_json_file(args.config)
    if args.dry_run:
        config.dry_run = True

    asyncio.run(run(config, args.resume))


if __name__ == "__main__":
    main()
