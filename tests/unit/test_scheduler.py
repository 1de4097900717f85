"""
Unit tests for the scheduled worker loop.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from analytics_pipeline.core.errors import ConfigurationError
from analytics_pipeline.workers.scheduler import ScheduledWorker

START = datetime(2025, 11, 17, 10, 2, tzinfo=timezone.utc)


class SteppingClock:
    """Advances by `step` on every reading, so scheduled instants are always due"""

    def __init__(self, start=START, step=timedelta(minutes=10)):
        self.now = start
        self.step = step
        self.readings = []

    def __call__(self):
        current = self.now
        self.readings.append(current)
        self.now = current + self.step
        return current


def stop_after(stop_event, runs):
    calls = []

    def job(event):
        assert event is stop_event
        calls.append(1)
        if len(calls) >= runs:
            stop_event.set()

    return job, calls


@pytest.mark.unit
class TestScheduledWorker:
    """Tests for ScheduledWorker.run_forever()"""

    def test_runs_until_stopped(self, stop_event):
        job, calls = stop_after(stop_event, 3)
        worker = ScheduledWorker("test", job, "*/5 * * * *", stop_event, clock=SteppingClock())

        worker.run_forever()

        assert len(calls) == 3
        assert worker.runs == 3
        assert worker.failures == 0

    def test_interval_mode_without_schedule(self, stop_event):
        job, calls = stop_after(stop_event, 2)
        worker = ScheduledWorker(
            "test", job, None, stop_event,
            fallback_interval=timedelta(minutes=5),
            clock=SteppingClock(),
        )

        worker.run_forever()

        assert len(calls) == 2

    def test_stopped_before_first_run(self, stop_event):
        job, calls = stop_after(stop_event, 1)
        stop_event.set()

        ScheduledWorker("test", job, "*/5 * * * *", stop_event, clock=SteppingClock()).run_forever()

        assert calls == []

    def test_stop_during_wait_skips_run(self, stop_event):
        job, calls = stop_after(stop_event, 1)
        # Clock stands still, so the worker waits the full five minutes unless stopped
        worker = ScheduledWorker("test", job, "*/5 * * * *", stop_event, clock=lambda: START)

        timer = threading.Timer(0.05, stop_event.set)
        timer.start()
        worker.run_forever()
        timer.cancel()

        assert calls == []

    def test_error_then_cooldown_then_rearm(self, stop_event):
        calls = []

        def job(event):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("sink unavailable")
            stop_event.set()

        worker = ScheduledWorker(
            "test", job, "*/5 * * * *", stop_event,
            error_cooldown=timedelta(0),
            clock=SteppingClock(),
        )

        worker.run_forever()

        assert len(calls) == 2
        assert worker.failures == 1
        assert worker.runs == 1

    def test_stop_during_cooldown(self, stop_event):
        calls = []

        def job(event):
            calls.append(1)
            stop_event.set()
            raise RuntimeError("boom")

        worker = ScheduledWorker(
            "test", job, "*/5 * * * *", stop_event,
            error_cooldown=timedelta(minutes=5),
            clock=SteppingClock(),
        )

        worker.run_forever()

        assert len(calls) == 1
        assert worker.failures == 1

    def test_schedule_recomputed_from_current_time(self, stop_event):
        job, _ = stop_after(stop_event, 2)
        clock = SteppingClock(step=timedelta(minutes=7))

        ScheduledWorker("test", job, "*/5 * * * *", stop_event, clock=clock).run_forever()

        # Each iteration reads the clock once to schedule and once to wait
        assert len(clock.readings) == 4

    def test_disabled_worker_returns(self, stop_event):
        job, calls = stop_after(stop_event, 1)

        ScheduledWorker("test", job, "*/5 * * * *", stop_event, enabled=False).run_forever()

        assert calls == []

    def test_invalid_schedule(self, stop_event):
        with pytest.raises(ConfigurationError):
            ScheduledWorker("test", lambda e: None, "not a cron", stop_event)

    def test_thread_lifecycle(self, stop_event):
        job, calls = stop_after(stop_event, 1)
        worker = ScheduledWorker("thread-test", job, None, stop_event, clock=SteppingClock())

        thread = worker.start()
        worker.join(timeout=5)

        assert thread.name == "thread-test"
        assert thread.daemon
        assert not worker.is_alive()
        assert len(calls) == 1
