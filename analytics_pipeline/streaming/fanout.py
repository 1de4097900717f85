"""
Multi-sink fan-out for normalized batches.

Sinks are written in order. A required sink failing aborts the fan-out; an
optional sink failing is recorded and the remaining sinks still run.
"""

from dataclasses import dataclass, field

from analytics_pipeline.core.errors import SinkWriteError
from analytics_pipeline.core.models import NormalizedRecord
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.observability.metrics import (
    record_error,
    record_sink_write,
    sink_write_duration_seconds,
    track_duration,
)
from analytics_pipeline.streaming.sinks import BaseSink

logger = get_logger(__name__)


@dataclass
class FanoutResult:
    """Per-sink stored counts and the errors of optional sinks that failed."""

    stored: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


class SinkFanout:
    """
    Writes one normalized batch to every configured sink.

    Usage:
        fanout = SinkFanout([RelationalSink(pool), DocumentSink(client)])
        result = fanout.write(records)
    """

    def __init__(self, sinks: list[BaseSink]):
        names = [sink.name for sink in sinks]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate sink names: {names}")
        self.sinks = list(sinks)

    @property
    def sink_names(self) -> list[str]:
        return [sink.name for sink in self.sinks]

    def write(self, records: list[NormalizedRecord]) -> FanoutResult:
        """
        Write a batch to all sinks.

        Args:
            records: Normalized records

        Returns:
            FanoutResult with one stored count per attempted sink

        Raises:
            SinkWriteError: If a required sink fails
        """
        result = FanoutResult()

        for sink in self.sinks:
            try:
                with track_duration(sink_write_duration_seconds, sink=sink.name):
                    stored = sink.write(records)
            except Exception as e:
                record_sink_write(sink.name, 0, success=False)
                record_error(f"sink.{sink.name}", e)
                result.stored[sink.name] = 0

                if sink.required:
                    logger.error(
                        f"Required sink {sink.name} failed: {e}",
                        extra={"sink": sink.name, "record_count": len(records)},
                        exc_info=True,
                    )
                    if isinstance(e, SinkWriteError):
                        raise
                    raise SinkWriteError(sink.name, str(e)) from e

                logger.error(
                    f"Optional sink {sink.name} failed, continuing: {e}",
                    extra={"sink": sink.name, "record_count": len(records)},
                    exc_info=True,
                )
                message = str(e) if isinstance(e, SinkWriteError) else f"{sink.name}: {e}"
                result.errors.append(message)
                continue

            record_sink_write(sink.name, stored)
            result.stored[sink.name] = stored

        return result
