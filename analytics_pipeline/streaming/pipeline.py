"""
Batch ingestion pipeline.

Coordinates one run: source → raw store → offset commit → normalizer →
sink fan-out, with the run ledger written from the finally block.
"""

import threading
import time
from datetime import timedelta
from enum import Enum

from analytics_pipeline.core.config import AppConfig, JdbcSinkWorkerConfig, ProcessorWorkerConfig
from analytics_pipeline.core.errors import ConfigurationError, SourceReadError
from analytics_pipeline.core.models import RunLedgerEntry
from analytics_pipeline.core.normalizer import normalize
from analytics_pipeline.core.schedule import DIRECT_PROCESSOR_INTERVAL, JDBC_PROCESSOR_INTERVAL
from analytics_pipeline.observability.logger import get_logger, log_operation
from analytics_pipeline.observability.metrics import (
    increment_counter,
    record_error,
    record_run,
    records_normalized_total,
)
from analytics_pipeline.storage.connection import DatabaseConnectionPool
from analytics_pipeline.storage.raw_store import RawStoreWriter
from analytics_pipeline.storage.run_ledger import RunLedger
from analytics_pipeline.streaming.fanout import SinkFanout
from analytics_pipeline.streaming.sinks import (
    BaseSink,
    DocumentSink,
    HttpSink,
    RelationalSink,
    WarehouseSink,
)
from analytics_pipeline.streaming.sources.kafka_source import ConsumedBatch, KafkaBatchSource

logger = get_logger(__name__)


class PipelineVariant(Enum):
    """Tags distinguishing the two processor variants."""

    DIRECT = ("Direct", "kafka-topic", "kafka-direct", DIRECT_PROCESSOR_INTERVAL)
    JDBC = ("JDBC", "kafka-topic-jdbc", "kafka-jdbc", JDBC_PROCESSOR_INTERVAL)

    def __init__(
        self,
        processor_type: str,
        provenance: str,
        processing_source: str,
        fallback_interval: timedelta,
    ):
        self.processor_type = processor_type
        self.provenance = provenance
        self.processing_source = processing_source
        self.fallback_interval = fallback_interval


class IngestionPipeline:
    """
    One parameterized pipeline run.

    Handles the complete flow:
    1. Consume a bounded batch from the queue
    2. Persist raw audit copies (fatal on failure)
    3. Commit the batch's offsets
    4. Normalize row-groups into canonical records
    5. Fan the records out to the configured sinks
    6. Record the run in the ledger
    """

    def __init__(
        self,
        variant: PipelineVariant,
        source: KafkaBatchSource,
        raw_writer: RawStoreWriter,
        fanout: SinkFanout,
        ledger: RunLedger,
        max_messages_per_batch: int = 100,
        consume_timeout: float = 120.0,
        record_empty_runs: bool = False,
    ):
        """
        Args:
            variant: Processor variant tags
            source: Batch source reader
            raw_writer: Raw store writer tagged with the variant's provenance
            fanout: Sinks receiving normalized records
            ledger: Run ledger
            max_messages_per_batch: Upper bound on accepted messages per run
            consume_timeout: Seconds the source may spend draining the queue
            record_empty_runs: Write a ledger row for runs with no messages
        """
        if raw_writer.provenance != variant.provenance:
            raise ValueError(
                f"Raw writer provenance {raw_writer.provenance!r} does not match "
                f"variant {variant.name} ({variant.provenance!r})"
            )

        self.variant = variant
        self.source = source
        self.raw_writer = raw_writer
        self.fanout = fanout
        self.ledger = ledger
        self.max_messages_per_batch = max_messages_per_batch
        self.consume_timeout = consume_timeout
        self.record_empty_runs = record_empty_runs

        logger.info(
            f"Initialized IngestionPipeline ({variant.processor_type}) with sinks "
            f"{fanout.sink_names}"
        )

    def run_once(self, stop_event: threading.Event | None = None) -> RunLedgerEntry | None:
        """
        Execute one run.

        Args:
            stop_event: Cooperative stop signal passed to the source

        Returns:
            The run's ledger entry, or None for an unrecorded empty run

        Raises:
            Whatever stopped the run, after the ledger row has been written
        """
        processor_type = self.variant.processor_type
        started = time.monotonic()

        entry = self.ledger.begin_run(processor_type)
        entry.records_stored = {name: 0 for name in self.fanout.sink_names}

        batch: ConsumedBatch | None = None
        should_record = True
        status = "success"

        try:
            with log_operation("Consume batch", logger=logger, processor_type=processor_type):
                batch = self.source.consume(
                    self.max_messages_per_batch,
                    self.consume_timeout,
                    stop_event,
                )

            if batch.error is not None:
                # Nothing is committed; the batch is redelivered on the next run
                raise SourceReadError(f"Failed to read from queue: {batch.error}")

            if batch.empty:
                # Malformed-only batches still move the group forward
                batch.commit()
                status = "empty"
                should_record = self.record_empty_runs
                logger.info(f"No messages to process ({processor_type})")
                return entry if should_record else None

            entry.records_processed = len(batch.messages)

            with log_operation("Persist raw records", logger=logger, count=len(batch.messages)):
                self.raw_writer.persist_raw(batch.messages)

            batch.commit()

            records = normalize(batch.messages, self.variant.processing_source)
            entry.records_normalized = len(records)
            increment_counter(
                records_normalized_total,
                len(records),
                processing_source=self.variant.processing_source,
            )

            with log_operation("Fan out normalized records", logger=logger, count=len(records)):
                result = self.fanout.write(records)

            entry.records_stored.update(result.stored)
            for error in result.errors:
                entry.add_error(error)
            if result.partial:
                status = "partial"

            logger.info(
                f"Processed {entry.records_processed} messages into "
                f"{entry.records_normalized} records ({processor_type})",
                extra={"records_stored": entry.records_stored, "status": status},
            )
            return entry

        except Exception as e:
            status = "failure"
            entry.add_error(str(e) or type(e).__name__)
            record_error(f"pipeline.{self.variant.name.lower()}", e)
            logger.error(f"Pipeline run failed ({processor_type}): {e}", exc_info=True)
            raise

        finally:
            if batch is not None:
                try:
                    batch.close()
                except Exception as e:
                    entry.add_error(f"consumer close failed: {e}")
                    record_error(f"pipeline.{self.variant.name.lower()}", e)
                    logger.error(f"Failed to close consumer ({processor_type}): {e}", exc_info=True)
            if should_record:
                self.ledger.finish(entry)
            record_run(
                processor_type,
                status,
                entry.records_processed,
                time.monotonic() - started,
            )


def build_sinks(
    variant: PipelineVariant,
    config: AppConfig,
    pool: DatabaseConnectionPool,
) -> list[BaseSink]:
    """
    Build the sink list for a variant from configuration.

    Raises:
        ConfigurationError: If an enabled sink is missing required settings
    """
    sinks: list[BaseSink] = [RelationalSink(pool)]

    if variant is PipelineVariant.DIRECT:
        worker = config.workers.data_processor
        google = config.google

        if (worker.store_in_firebase or worker.store_in_bigquery) and not google.project_id:
            raise ConfigurationError(
                "google.project_id is required when Firestore or BigQuery storage is enabled"
            )
        if worker.store_in_firebase:
            sinks.append(DocumentSink.from_project(google.project_id, google.firestore_collection))
        if worker.store_in_bigquery:
            sinks.append(
                WarehouseSink.from_project(
                    google.project_id,
                    google.bigquery_dataset,
                    google.bigquery_table,
                )
            )
    else:
        worker = config.workers.jdbc_sink
        sinks.append(
            HttpSink.from_url(
                worker.jdbc_sink_url,
                worker.jdbc_connection_string,
                worker.jdbc_table_name,
            )
        )

    return sinks


def worker_config_for(
    variant: PipelineVariant,
    config: AppConfig,
) -> ProcessorWorkerConfig | JdbcSinkWorkerConfig:
    if variant is PipelineVariant.DIRECT:
        return config.workers.data_processor
    return config.workers.jdbc_sink


def create_ingestion_pipeline(
    variant: PipelineVariant,
    config: AppConfig,
    pool: DatabaseConnectionPool,
    sinks: list[BaseSink] | None = None,
    source: KafkaBatchSource | None = None,
) -> IngestionPipeline:
    """
    Factory function to create an IngestionPipeline from configuration.

    Args:
        variant: Processor variant
        config: Application configuration
        pool: Open database connection pool owned by the worker
        sinks: Sink list override (defaults to build_sinks)
        source: Source override (defaults to a KafkaBatchSource from config)

    Returns:
        Configured IngestionPipeline

    Example:
        >>> config = load_config("config/workers.yaml")
        >>> pool = DatabaseConnectionPool.from_settings(config.database)
        >>> pool.open()
        >>> pipeline = create_ingestion_pipeline(PipelineVariant.DIRECT, config, pool)
        >>> entry = pipeline.run_once()
    """
    worker = worker_config_for(variant, config)

    return IngestionPipeline(
        variant=variant,
        source=source or KafkaBatchSource.from_settings(config.kafka),
        raw_writer=RawStoreWriter(pool, variant.provenance),
        fanout=SinkFanout(sinks if sinks is not None else build_sinks(variant, config, pool)),
        ledger=RunLedger(pool),
        max_messages_per_batch=worker.max_messages_per_batch,
        consume_timeout=config.kafka.consume_timeout_seconds,
        record_empty_runs=worker.record_empty_runs,
    )
