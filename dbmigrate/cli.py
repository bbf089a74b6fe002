"""Command line interface for the database transfer engine."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .errors import ConfigurationError, ConnectionLost, MigrationError
from .models.config import TransferConfig
from .models.transfer import SessionStatus, TransferSnapshot
from .orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Transfer tables, queries and procedures from Access to MySQL"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # List source objects
    list_parser = subparsers.add_parser("list", help="List transferable source objects")
    list_parser.add_argument("--config", required=True, help="Path to transfer config file")
    list_parser.add_argument("--json", action="store_true", help="Print the catalog as JSON")

    # Run a transfer
    run_parser = subparsers.add_parser("run", help="Run a transfer")
    run_parser.add_argument("--config", required=True, help="Path to transfer config file")
    run_parser.add_argument("--select", nargs="+", help="Object names to transfer (overrides config)")
    run_parser.add_argument("--concurrency", type=int, help="Objects transferred at once")
    run_parser.add_argument("--dry-run", action="store_true", help="Read the source without writing")
    run_parser.add_argument("--resume", help="Snapshot file of an earlier run to resume from")
    run_parser.add_argument("--save-snapshot", help="Write the final item states to this file")

    # Test the target connection
    test_parser = subparsers.add_parser("test-connection", help="Check that the MySQL target accepts connections")
    test_parser.add_argument("--config", required=True, help="Path to transfer config file")

    # Validate config
    validate_parser = subparsers.add_parser("validate-config", help="Validate a transfer config")
    validate_parser.add_argument("--config", required=True, help="Path to transfer config file")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        if args.command == "list":
            return run_list(args)
        elif args.command == "run":
            return run_transfer(args)
        elif args.command == "test-connection":
            return run_test_connection(args)
        elif args.command == "validate-config":
            return run_validate_config(args)
        else:
            parser.print_help()
            return 0
    except ConfigurationError as e:
        print("\nConfiguration is invalid:")
        for error in e.errors:
            print(f"  - {error}")
        return 2
    except MigrationError as e:
        logger.error(str(e))
        return 1


def run_list(args) -> int:
    """List the source catalog."""
    config = TransferConfig.from_json_file(args.config)
    # Listing needs no target
    config.dry_run = True
    orchestrator = TransferOrchestrator.from_config(config)
    objects = orchestrator.list_objects()

    if args.json:
        print(json.dumps([obj.to_dict() for obj in objects], indent=2))
        return 0

    print(f"\n=== Source objects ({len(objects)}) ===")
    for obj in objects:
        count = obj.estimated_record_count
        records = f"{count} records" if count is not None else "-"
        print(f"  {obj.name:<40} {obj.kind.value:<10} {records}")
    return 0


def run_transfer(args) -> int:
    """Run a transfer from a config file."""
    config = TransferConfig.from_json_file(args.config)

    if args.dry_run:
        config.dry_run = True
    if args.concurrency is not None:
        config.concurrency = args.concurrency
    if args.select:
        config.selection = list(args.select)

    orchestrator = TransferOrchestrator.from_config(config)
    selection = config.selection or [obj.name for obj in orchestrator.list_objects()]

    snapshot = asyncio.run(_run_session(orchestrator, selection, args.resume, args.save_snapshot))
    _print_summary(snapshot)
    return 0 if snapshot.status == SessionStatus.COMPLETED else 1


async def _run_session(
    orchestrator: TransferOrchestrator,
    selection: List[str],
    resume_from: Optional[str],
    snapshot_path: Optional[str]
) -> TransferSnapshot:
    session_id = await orchestrator.start_session(selection, resume_from=resume_from)
    try:
        snapshot = await orchestrator.wait(session_id)
    except asyncio.CancelledError:
        orchestrator.cancel_session(session_id)
        raise
    finally:
        if snapshot_path:
            orchestrator.save_snapshot(session_id, snapshot_path)
        await orchestrator.shutdown()
    return snapshot


def _print_summary(snapshot: TransferSnapshot):
    print("\n" + "=" * 60)
    print("TRANSFER COMPLETE")
    print("=" * 60)
    print(f"Status: {snapshot.status.value}")
    print(f"Overall progress: {snapshot.overall_progress:.1f}%")
    for status, count in snapshot.counts.items():
        if count:
            print(f"{status.replace('_', ' ').capitalize()}: {count}")

    for item in snapshot.items:
        line = f"  {item.name:<40} {item.status.value:<12} {item.records_transferred}/{item.total_records}"
        if item.error:
            line += f"  [{item.error.kind.value}] {item.error.message}"
        print(line)

    if snapshot.started_at and snapshot.completed_at:
        print(f"Duration: {(snapshot.completed_at - snapshot.started_at).total_seconds():.2f} seconds")


def run_test_connection(args) -> int:
    """Open a connection to the configured target and report the result."""
    config = TransferConfig.from_json_file(args.config)
    # The target is tested even when the config is a dry run
    config.dry_run = False
    orchestrator = TransferOrchestrator.from_config(config)
    target = config.target

    print(f"\n=== Testing connection to {target.host}:{target.port}/{target.database} ===")
    try:
        asyncio.run(_test_target(orchestrator))
    except ConnectionLost as e:
        print(f"\nConnection failed: {e}")
        return 1

    print("\nConnected!")
    return 0


async def _test_target(orchestrator: TransferOrchestrator) -> bool:
    try:
        return await orchestrator.test_target()
    finally:
        await orchestrator.shutdown()


def run_validate_config(args) -> int:
    """Validate a transfer config file."""
    config = TransferConfig.from_json_file(args.config)
    errors = config.validate()

    print("\n=== Validating Config ===")
    if errors:
        for error in errors:
            print(f"  - {error}")
        print(f"\nFound {len(errors)} validation errors")
        return 1

    print("\nConfig is valid!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
