"""
CLI for running the analytics workers.

Starts the enabled scheduled workers, or runs a single worker once.

Usage:
    analytics-worker run --config config/workers.yaml
    analytics-worker run-once --worker data-processor --config config/workers.yaml
"""

import argparse
import json
import signal
import sys
import threading
from datetime import timedelta
from typing import Callable

from analytics_pipeline.core.config import AppConfig, load_config
from analytics_pipeline.core.errors import ConfigurationError
from analytics_pipeline.core.schedule import REPORT_FETCH_INTERVAL
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.observability.metrics import start_metrics_server
from analytics_pipeline.storage.connection import DatabaseConnectionPool, ensure_schema
from analytics_pipeline.streaming.kafka_producer import KafkaReportProducer
from analytics_pipeline.streaming.pipeline import (
    PipelineVariant,
    create_ingestion_pipeline,
    worker_config_for,
)
from analytics_pipeline.workers.collaborators import HttpCredentialClient, HttpReportSource
from analytics_pipeline.workers.report_fetch import ReportFetchJob
from analytics_pipeline.workers.scheduler import ScheduledWorker

logger = get_logger(__name__)

WORKER_VARIANTS = {
    "data-processor": PipelineVariant.DIRECT,
    "jdbc-sink": PipelineVariant.JDBC,
}
REPORT_FETCH_WORKER = "report-fetch"

# Shared stop signal for all worker threads
_stop_event = threading.Event()


def signal_handler(signum, frame):  # type: ignore[no-untyped-def]
    """
    Handle shutdown signals (SIGINT, SIGTERM) by stopping all workers.

    Args:
        signum: Signal number
        frame: Current stack frame
    """
    signal_name = signal.Signals(signum).name
    logger.info(f"Received {signal_name} signal, initiating graceful shutdown...")
    _stop_event.set()


class WorkerResources:
    """Pools and producers opened for workers, closed on shutdown."""

    def __init__(self) -> None:
        self._closers: list[Callable[[], None]] = []

    def add(self, closer: Callable[[], None]) -> None:
        self._closers.append(closer)

    def close(self) -> None:
        for closer in reversed(self._closers):
            try:
                closer()
            except Exception as e:
                logger.warning(f"Error releasing worker resource: {e}")
        self._closers.clear()


def open_pool(config: AppConfig, name: str, resources: WorkerResources, init_schema: bool) -> DatabaseConnectionPool:
    pool = DatabaseConnectionPool.from_settings(config.database, name=f"{name}-pool")
    pool.open()
    resources.add(pool.close)
    if init_schema:
        ensure_schema(pool)
    return pool


def build_job(
    worker_name: str,
    config: AppConfig,
    resources: WorkerResources,
    init_schema: bool = False,
) -> Callable[[threading.Event], object]:
    """
    Build the callable run by a worker.

    Raises:
        ConfigurationError: If the worker's configuration is incomplete
    """
    if worker_name in WORKER_VARIANTS:
        variant = WORKER_VARIANTS[worker_name]
        pool = open_pool(config, worker_name, resources, init_schema)
        pipeline = create_ingestion_pipeline(variant, config, pool)
        return pipeline.run_once

    if worker_name == REPORT_FETCH_WORKER:
        worker = config.workers.report_fetch
        if not worker.credentials_url or not worker.report_source_url:
            raise ConfigurationError("report_fetch requires credentials_url and report_source_url")

        producer = KafkaReportProducer.from_settings(config.kafka)
        resources.add(producer.close)
        return ReportFetchJob(
            worker,
            HttpCredentialClient.from_url(worker.credentials_url),
            HttpReportSource.from_url(worker.report_source_url),
            producer,
        )

    raise ConfigurationError(f"Unknown worker: {worker_name}")


def build_workers(
    config: AppConfig,
    stop_event: threading.Event,
    resources: WorkerResources,
    init_schema: bool = False,
) -> list[ScheduledWorker]:
    workers = []

    for worker_name, variant in WORKER_VARIANTS.items():
        worker_config = worker_config_for(variant, config)
        if not worker_config.enabled:
            logger.info(f"Worker {worker_name} is disabled")
            continue

        workers.append(
            ScheduledWorker(
                worker_name,
                build_job(worker_name, config, resources, init_schema),
                worker_config.schedule,
                stop_event,
                fallback_interval=variant.fallback_interval,
                error_cooldown=timedelta(seconds=worker_config.error_cooldown_seconds),
            )
        )

    fetch_config = config.workers.report_fetch
    if fetch_config.enabled:
        workers.append(
            ScheduledWorker(
                REPORT_FETCH_WORKER,
                build_job(REPORT_FETCH_WORKER, config, resources),
                fetch_config.schedule,
                stop_event,
                fallback_interval=REPORT_FETCH_INTERVAL,
                error_cooldown=timedelta(seconds=fetch_config.error_cooldown_seconds),
            )
        )
    else:
        logger.info(f"Worker {REPORT_FETCH_WORKER} is disabled")

    return workers


def run_workers(args: argparse.Namespace) -> int:
    """
    Start all enabled workers and wait for a shutdown signal.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    resources = WorkerResources()

    try:
        config = load_config(args.config)

        metrics_port = args.metrics_port or config.metrics_port
        if metrics_port:
            start_metrics_server(int(metrics_port))
            logger.info(f"Metrics exporter listening on port {metrics_port}")

        workers = build_workers(config, _stop_event, resources, init_schema=args.init_schema)
        if not workers:
            logger.warning("No workers enabled, nothing to do")
            print(json.dumps({"status": "idle", "workers": []}, indent=2))
            return 0

        for worker in workers:
            worker.start()

        print(json.dumps({"status": "started", "workers": [w.name for w in workers]}, indent=2))
        logger.info("Workers running (press Ctrl+C to stop)...")

        while not _stop_event.is_set() and any(w.is_alive() for w in workers):
            _stop_event.wait(1)

        _stop_event.set()
        for worker in workers:
            # In-flight runs finish their current stage before the thread exits
            worker.join(args.shutdown_timeout)
            if worker.is_alive():
                logger.warning(f"Worker {worker.name} did not stop within {args.shutdown_timeout}s")

        logger.info("Shutdown complete")
        return 0

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(json.dumps({"status": "error", "error": str(e)}), file=sys.stderr)
        return 2

    except Exception as e:
        logger.error(f"Failed to run workers: {e}", exc_info=True)
        print(json.dumps({"status": "error", "error": str(e)}), file=sys.stderr)
        return 1

    finally:
        resources.close()


def run_once(args: argparse.Namespace) -> int:
    """
    Run a single worker job once and print its outcome as JSON.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 if the run failed or recorded an error)
    """
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    resources = WorkerResources()

    try:
        config = load_config(args.config)
        job = build_job(args.worker, config, resources, init_schema=args.init_schema)
        result = job(_stop_event)

        if result is None:
            output = {"status": "empty", "worker": args.worker}
        else:
            output = {"worker": args.worker, **result.model_dump(mode="json", by_alias=False)}
            failed = bool(getattr(result, "error_message", ""))
            output["status"] = "partial" if failed else "success"

        print(json.dumps(output, indent=2))
        return 1 if output["status"] == "partial" else 0

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(json.dumps({"status": "error", "error": str(e)}), file=sys.stderr)
        return 2

    except Exception as e:
        logger.error(f"Run failed for worker {args.worker}: {e}", exc_info=True)
        print(json.dumps({"status": "error", "worker": args.worker, "error": str(e)}), file=sys.stderr)
        return 1

    finally:
        resources.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run analytics ingestion workers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start all enabled workers
  %(prog)s run --config config/workers.yaml --metrics-port 8000

  # Process one batch with the direct processor
  %(prog)s run-once --worker data-processor --config config/workers.yaml
        """
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Start all enabled workers")
    run_parser.add_argument(
        "--config",
        default="config/workers.yaml",
        help="Path to worker configuration (default: config/workers.yaml)"
    )
    run_parser.add_argument(
        "--metrics-port",
        type=int,
        help="Expose Prometheus metrics on this port"
    )
    run_parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for each worker on shutdown (default: 60)"
    )
    run_parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create pipeline tables if they do not exist"
    )

    once_parser = subparsers.add_parser("run-once", help="Run one worker job once")
    once_parser.add_argument(
        "--worker",
        required=True,
        choices=[*WORKER_VARIANTS, REPORT_FETCH_WORKER],
        help="Worker to run"
    )
    once_parser.add_argument(
        "--config",
        default="config/workers.yaml",
        help="Path to worker configuration (default: config/workers.yaml)"
    )
    once_parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create pipeline tables if they do not exist"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for worker CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return run_workers(args)
    elif args.command == "run-once":
        return run_once(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
