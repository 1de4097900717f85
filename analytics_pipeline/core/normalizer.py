"""
Report row normalization.

Maps heterogeneous report row-groups onto the canonical NormalizedRecord
shape. No storage or network access; deterministic output order.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Iterable

from analytics_pipeline.core.models import MetricValue, NormalizedRecord, ReportMessage, ReportRow
from analytics_pipeline.observability.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_DIMENSION = "Unknown"
MAX_COUNTRY_LENGTH = 100

# Substrings matched case-insensitively against metric names
ACTIVE_USERS_METRIC = "activeuser"
SESSIONS_METRIC = "session"


def parse_metric_int(value: str | None) -> int:
    """
    Best-effort integer coercion of a metric value.

    Accepts surrounding whitespace and integral decimals ("12.0").
    Anything else, including None, "N/A" and non-integral numbers, yields 0.
    """
    if value is None:
        return 0

    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass

    try:
        number = float(text)
    except ValueError:
        return 0

    if number.is_integer():
        return int(number)
    return 0


def first_matching_metric(metrics: Iterable[MetricValue], substring: str) -> MetricValue | None:
    """Return the first metric whose lower-cased name contains substring."""
    for metric in metrics:
        if substring in (metric.name or "").lower():
            return metric
    return None


def extract_measures(row: ReportRow) -> tuple[int, int]:
    """
    Extract (active_users, sessions) from a row-group.

    A metric name matching "activeuser" is never used for sessions, so a
    name like "activeUsersPerSession" counts as active users only.
    """
    active_metric = first_matching_metric(row.metric_values, ACTIVE_USERS_METRIC)
    session_metric = first_matching_metric(
        (m for m in row.metric_values if ACTIVE_USERS_METRIC not in (m.name or "").lower()),
        SESSIONS_METRIC,
    )

    active_users = parse_metric_int(active_metric.value) if active_metric else 0
    sessions = parse_metric_int(session_metric.value) if session_metric else 0
    return active_users, sessions


def record_key(message: ReportMessage, row_index: int, processing_source: str) -> str:
    """
    Deterministic fingerprint of one row-group.

    Replays of the same queue message produce the same key, which lets the
    warehouse deduplicate retried inserts.
    """
    identity = {
        "user_id": message.user_id,
        "property_id": message.property_id,
        "generated_at": message.generated_at.isoformat(),
        "row_index": row_index,
        "processing_source": processing_source,
    }
    data_str = json.dumps(identity, sort_keys=True)
    return hashlib.md5(data_str.encode()).hexdigest()


def normalize_row(
    message: ReportMessage,
    row: ReportRow,
    row_index: int,
    processing_source: str,
    processed_at: datetime,
) -> NormalizedRecord:
    # Missing and empty first dimensions are both stored as Unknown
    country = row.dimension_values[0] if row.dimension_values else UNKNOWN_DIMENSION
    if not country:
        country = UNKNOWN_DIMENSION
    elif len(country) > MAX_COUNTRY_LENGTH:
        logger.warning(
            f"Truncating country dimension of {len(country)} characters to {MAX_COUNTRY_LENGTH}",
            extra={"user_id": message.user_id, "property_id": message.property_id, "row_index": row_index},
        )
        country = country[:MAX_COUNTRY_LENGTH]

    active_users, sessions = extract_measures(row)

    return NormalizedRecord(
        user_id=message.user_id,
        property_id=message.property_id,
        event_date=message.generated_at.date(),
        country=country,
        active_users=active_users,
        sessions=sessions,
        processing_source=processing_source,
        processed_at=processed_at,
        record_key=record_key(message, row_index, processing_source),
    )


def normalize(
    messages: Iterable[ReportMessage],
    processing_source: str,
    processed_at: datetime | None = None,
) -> list[NormalizedRecord]:
    """
    Normalize report messages into canonical records.

    Produces exactly one record per row-group, in message order and then
    row-group order within each message.

    Args:
        messages: Consumed report messages
        processing_source: Tag identifying the pipeline variant
        processed_at: Processing timestamp shared by the batch (defaults to now)

    Returns:
        List of NormalizedRecord
    """
    processed_at = processed_at or datetime.now(timezone.utc)

    normalized = []
    for message in messages:
        for row_index, row in enumerate(message.report_data):
            normalized.append(
                normalize_row(message, row, row_index, processing_source, processed_at)
            )

    return normalized
