"""
Scheduled worker loop.

Each worker runs its job on its own thread, sleeping on a shared stop event
until the next scheduled instant. A job error is logged and followed by a
cooldown before the schedule is re-armed.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from analytics_pipeline.core.schedule import (
    DIRECT_PROCESSOR_INTERVAL,
    ERROR_COOLDOWN,
    next_occurrence,
    validate_schedule,
)
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.observability.metrics import record_error

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledWorker:
    """
    Runs a job on a schedule until the stop event is set.

    Usage:
        stop_event = threading.Event()
        worker = ScheduledWorker("data-processor", pipeline.run_once, "*/5 * * * *", stop_event)
        worker.start()
        ...
        stop_event.set()
        worker.join()
    """

    def __init__(
        self,
        name: str,
        job: Callable[[threading.Event], object],
        schedule: str | None,
        stop_event: threading.Event,
        fallback_interval: timedelta = DIRECT_PROCESSOR_INTERVAL,
        error_cooldown: timedelta = ERROR_COOLDOWN,
        enabled: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            name: Worker name used for the thread and in logs
            job: Callable running one unit of work; receives the stop event
            schedule: Cron expression, or None to run every fallback_interval
            stop_event: Shared stop signal
            fallback_interval: Interval used when no schedule is configured
            error_cooldown: Wait after a failed run
            enabled: Disabled workers return immediately
            clock: Source of the current UTC time

        Raises:
            ConfigurationError: If the schedule is not a valid cron expression
        """
        self.name = name
        self.job = job
        self.schedule = validate_schedule(schedule)
        self.stop_event = stop_event
        self.fallback_interval = fallback_interval
        self.error_cooldown = error_cooldown
        self.enabled = enabled
        self.clock = clock

        self.runs = 0
        self.failures = 0
        self._thread: threading.Thread | None = None

    def _wait_until(self, due: datetime) -> bool:
        """Sleep until due. Returns False if the stop event fired first."""
        delay = max((due - self.clock()).total_seconds(), 0.0)
        return not self.stop_event.wait(delay)

    def run_forever(self) -> None:
        """Worker loop; returns once the stop event is set."""
        if not self.enabled:
            logger.info(f"Worker {self.name} is disabled")
            return

        logger.info(
            f"Worker {self.name} started with schedule: {self.schedule or 'interval'}",
            extra={"worker": self.name, "fallback_seconds": self.fallback_interval.total_seconds()},
        )

        while not self.stop_event.is_set():
            due = next_occurrence(self.schedule, self.clock(), self.fallback_interval)
            logger.info(f"Worker {self.name} next run at {due.isoformat()}", extra={"worker": self.name})

            if not self._wait_until(due):
                break

            try:
                self.job(self.stop_event)
                self.runs += 1
            except Exception as e:
                self.failures += 1
                record_error(f"worker.{self.name}", e)
                logger.error(
                    f"Error in worker {self.name}, cooling down for "
                    f"{self.error_cooldown.total_seconds():.0f}s: {e}",
                    extra={"worker": self.name},
                    exc_info=True,
                )
                if self.stop_event.wait(self.error_cooldown.total_seconds()):
                    break

        logger.info(f"Worker {self.name} stopped", extra={"worker": self.name, "runs": self.runs})

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run_forever, name=self.name, daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
