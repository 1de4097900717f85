"""
Prometheus metrics collection for analytics-pipeline

This module provides metrics instrumentation for monitoring
ingestion runs, sink health and queue consumption.
"""
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
)


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# RUN METRICS
# =======================

runs_total = Counter(
    name="analytics_pipeline_runs_total",
    documentation="Total number of pipeline runs",
    labelnames=["processor_type", "status"],  # status: success, partial, failure, empty
    registry=REGISTRY,
)

run_duration_seconds = Histogram(
    name="analytics_pipeline_run_duration_seconds",
    documentation="Wall time of a pipeline run in seconds",
    labelnames=["processor_type"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

last_success_timestamp = Gauge(
    name="analytics_pipeline_last_success_timestamp_seconds",
    documentation="Unix time of the last run that finished without error",
    labelnames=["processor_type"],
    registry=REGISTRY,
)

# =======================
# QUEUE METRICS
# =======================

messages_consumed_total = Counter(
    name="analytics_pipeline_messages_consumed_total",
    documentation="Total number of queue messages consumed",
    labelnames=["topic", "status"],  # status: accepted, malformed
    registry=REGISTRY,
)

batch_size = Histogram(
    name="analytics_pipeline_batch_size_records",
    documentation="Number of accepted queue records per run",
    labelnames=["processor_type"],
    buckets=[1, 10, 50, 100, 500, 1000, 5000],
    registry=REGISTRY,
)

messages_produced_total = Counter(
    name="analytics_pipeline_messages_produced_total",
    documentation="Total number of report messages produced to the queue",
    labelnames=["topic", "status"],  # status: delivered, failed
    registry=REGISTRY,
)

# =======================
# STORAGE METRICS
# =======================

records_normalized_total = Counter(
    name="analytics_pipeline_records_normalized_total",
    documentation="Total number of normalized records produced",
    labelnames=["processing_source"],
    registry=REGISTRY,
)

records_stored_total = Counter(
    name="analytics_pipeline_records_stored_total",
    documentation="Total number of records written to a sink",
    labelnames=["sink"],
    registry=REGISTRY,
)

sink_failures_total = Counter(
    name="analytics_pipeline_sink_failures_total",
    documentation="Total number of failed sink writes",
    labelnames=["sink"],
    registry=REGISTRY,
)

sink_write_duration_seconds = Histogram(
    name="analytics_pipeline_sink_write_duration_seconds",
    documentation="Time spent writing a batch to a sink in seconds",
    labelnames=["sink"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)

# =======================
# ERROR METRICS
# =======================

errors_total = Counter(
    name="analytics_pipeline_errors_total",
    documentation="Total number of errors",
    labelnames=["component", "error_type"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Lazy import: the exporter only binds a port when explicitly requested
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(sink_write_duration_seconds, sink="bigquery"):
            sink.write(records)
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """Increment a counter metric"""
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """Observe a value in a histogram metric"""
    histogram.labels(**labels).observe(value)


# =======================
# RUN HELPERS
# =======================

def record_run(
    processor_type: str,
    status: str,
    records_processed: int,
    duration_seconds: float,
) -> None:
    """
    Record the outcome of one pipeline run.

    Args:
        processor_type: Pipeline variant tag ("Direct", "JDBC")
        status: success, partial, failure or empty
        records_processed: Accepted queue records in the run
        duration_seconds: Run wall time in seconds
    """
    increment_counter(runs_total, 1, processor_type=processor_type, status=status)

    if records_processed > 0:
        observe_histogram(batch_size, records_processed, processor_type=processor_type)

    if duration_seconds > 0:
        observe_histogram(run_duration_seconds, duration_seconds, processor_type=processor_type)

    if status in ("success", "empty"):
        last_success_timestamp.labels(processor_type=processor_type).set_to_current_time()


def record_sink_write(sink: str, stored: int, success: bool = True) -> None:
    """
    Record a sink write.

    Args:
        sink: Sink name
        stored: Number of records the sink accepted
        success: Whether the write completed without raising
    """
    if stored > 0:
        increment_counter(records_stored_total, stored, sink=sink)
    if not success:
        increment_counter(sink_failures_total, 1, sink=sink)


def record_error(component: str, error: BaseException) -> None:
    """Count an error raised by a pipeline component"""
    increment_counter(errors_total, 1, component=component, error_type=type(error).__name__)
