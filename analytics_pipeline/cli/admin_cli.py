"""
Admin CLI for inspecting pipeline runs.

Usage:
    analytics-admin recent-runs [--limit 20] [--processor-type Direct]
    analytics-admin failures [--processor-type JDBC]
"""

import argparse
import json
import os
import sys
from datetime import datetime

from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.storage.connection import DatabaseConnectionPool
from analytics_pipeline.storage.run_ledger import RunLedger

logger = get_logger(__name__)


def format_timestamp(ts: datetime | str | None) -> str:
    """Format timestamp for display."""
    if isinstance(ts, str):
        return ts
    return ts.strftime("%Y-%m-%d %H:%M:%S") if ts else "N/A"


def format_stored(stored: dict | None) -> str:
    if not stored:
        return "-"
    return ", ".join(f"{sink}={count}" for sink, count in stored.items())


def create_pool(args: argparse.Namespace) -> DatabaseConnectionPool:
    return DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
        name="analytics-admin",
    )


def recent_runs_command(args: argparse.Namespace) -> int:
    """
    Display the most recent pipeline runs.

    Args:
        args: Command line arguments
    """
    pool = create_pool(args)

    try:
        pool.open()
        runs = RunLedger(pool).recent_runs(limit=args.limit, processor_type=args.processor_type)

        if args.json:
            print(json.dumps(runs, indent=2, default=str))
            return 0

        if not runs:
            print("\nNo pipeline runs recorded yet.")
            return 0

        print(f"\n{'=' * 100}")
        print("RECENT PIPELINE RUNS")
        if args.processor_type:
            print(f"Processor: {args.processor_type}")
        print(f"{'=' * 100}\n")

        print(f"{'ID':<8} {'Processed At':<20} {'Type':<8} {'Msgs':>6} {'Norm':>6}  {'Stored':<40} {'Error'}")
        print(f"{'-' * 100}")

        for run in runs:
            error = run["error_message"] or "-"
            if len(error) > 60:
                error = error[:57] + "..."
            print(
                f"{run['id']:<8} {format_timestamp(run['processed_at']):<20} "
                f"{run['processor_type']:<8} {run['records_processed']:>6} "
                f"{run['records_normalized']:>6}  {format_stored(run['records_stored']):<40} {error}"
            )

        print(f"\n{'=' * 100}\n")
        return 0

    except Exception as e:
        logger.error(f"Error querying recent runs: {e}", exc_info=True)
        print(f"\nError: {e}")
        return 1

    finally:
        pool.close()


def failures_command(args: argparse.Namespace) -> int:
    """
    Display run failure statistics per processor type.

    Args:
        args: Command line arguments
    """
    pool = create_pool(args)

    try:
        pool.open()
        summary = RunLedger(pool).failure_summary(processor_type=args.processor_type)

        if args.json:
            print(json.dumps(summary, indent=2, default=str))
            return 0

        print(f"\n{'=' * 60}")
        print("RUN FAILURE SUMMARY")
        print(f"{'=' * 60}\n")

        print("Overall:")
        print(f"  Total runs:  {summary['total_runs']}")
        print(f"  Failed runs: {summary['failed_runs']}\n")

        print("By Processor:")
        for processor_type, row in summary["by_processor"].items():
            print(
                f"  {processor_type:<10} runs={row['total_runs']:>6} failed={row['failed_runs']:>6} "
                f"last success: {format_timestamp(row['last_success_at'])}"
            )

        print(f"\n{'=' * 60}\n")
        return 0

    except Exception as e:
        logger.error(f"Error getting failure summary: {e}", exc_info=True)
        print(f"\nError: {e}")
        return 1

    finally:
        pool.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Admin CLI for the analytics ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Global database connection options
    parser.add_argument(
        "--db-host",
        default=os.getenv("DB_HOST", "localhost"),
        help="Database host (default: env var DB_HOST or localhost)"
    )
    parser.add_argument(
        "--db-port",
        type=int,
        default=int(os.getenv("DB_PORT", "5432")),
        help="Database port (default: env var DB_PORT or 5432)"
    )
    parser.add_argument(
        "--db-name",
        default=os.getenv("DB_NAME", "analytics"),
        help="Database name (default: env var DB_NAME or analytics)"
    )
    parser.add_argument(
        "--db-user",
        default=os.getenv("DB_USER", "pipeline"),
        help="Database user (default: env var DB_USER or pipeline)"
    )
    parser.add_argument(
        "--db-password",
        default=os.getenv("DB_PASSWORD"),
        help="Database password (default: env var DB_PASSWORD)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    recent_parser = subparsers.add_parser(
        "recent-runs",
        help="Show the most recent pipeline runs"
    )
    recent_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of runs to show (default: 20)"
    )
    recent_parser.add_argument(
        "--processor-type",
        help="Only show runs of this processor (Direct, JDBC)"
    )

    failures_parser = subparsers.add_parser(
        "failures",
        help="Show failure statistics per processor"
    )
    failures_parser.add_argument(
        "--processor-type",
        help="Only summarize runs of this processor (Direct, JDBC)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for admin CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if not args.db_password:
        print("Error: database password required (--db-password or DB_PASSWORD)", file=sys.stderr)
        return 2

    try:
        if args.command == "recent-runs":
            return recent_runs_command(args)
        elif args.command == "failures":
            return failures_command(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
