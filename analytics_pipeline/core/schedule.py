"""
Schedule evaluation for worker loops.

`next_occurrence` is a pure function: the worker loop keeps no timer state
beyond the instant it is currently waiting for.
"""

from datetime import datetime, timedelta, timezone

from croniter import croniter

from analytics_pipeline.core.errors import ConfigurationError

# Fallback intervals when a worker has no schedule configured
REPORT_FETCH_INTERVAL = timedelta(hours=1)
DIRECT_PROCESSOR_INTERVAL = timedelta(minutes=5)
JDBC_PROCESSOR_INTERVAL = timedelta(minutes=10)

# Wait after an unexpected run error before re-arming the schedule
ERROR_COOLDOWN = timedelta(minutes=5)


def validate_schedule(schedule: str | None) -> str | None:
    """
    Check a cron expression.

    Args:
        schedule: Five-field cron expression, or None/empty for interval mode

    Returns:
        The stripped expression, or None for interval mode

    Raises:
        ConfigurationError: If the expression cannot be parsed
    """
    if schedule is None or not schedule.strip():
        return None

    schedule = schedule.strip()
    if not croniter.is_valid(schedule):
        raise ConfigurationError(f"Invalid cron schedule: {schedule!r}")
    return schedule


def next_occurrence(
    schedule: str | None,
    now: datetime,
    fallback_interval: timedelta = DIRECT_PROCESSOR_INTERVAL,
) -> datetime:
    """
    Compute the next scheduled instant strictly after `now`.

    Cron expressions are evaluated in UTC. A naive `now` is taken to be UTC.

    Args:
        schedule: Cron expression, or None/empty to use the fallback interval
        now: Reference instant
        fallback_interval: Interval used when no schedule is configured

    Returns:
        Timezone-aware UTC datetime of the next run

    Raises:
        ConfigurationError: If the schedule is not a valid cron expression
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)

    expression = validate_schedule(schedule)
    if expression is None:
        return now + fallback_interval

    candidate = croniter(expression, now).get_next(datetime)
    # Strictly after now, even when now carries sub-second precision
    while candidate <= now:
        candidate = croniter(expression, candidate).get_next(datetime)
    return candidate
