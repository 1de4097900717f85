"""
Relational sink for normalized records.

Bulk-inserts the whole batch into normalized_analytics_data in one
transaction. This is the required sink: its failure aborts the run.
"""

from analytics_pipeline.core.models import NormalizedRecord
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.storage.connection import DatabaseConnectionPool

from .base_sink import BaseSink

logger = get_logger(__name__)

INSERT_NORMALIZED_SQL = """
    INSERT INTO normalized_analytics_data (
        user_id, property_id, event_date, country, active_users,
        sessions, processed_at, processing_source, record_key
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
"""


class RelationalSink(BaseSink):
    """Appends normalized records to PostgreSQL."""

    required = True

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Args:
            pool: Database connection pool owned by the worker
        """
        self.pool = pool

    @property
    def name(self) -> str:
        return "postgresql"

    def write(self, records: list[NormalizedRecord]) -> int:
        if not records:
            return 0

        data_tuples = [
            (
                record.user_id,
                record.property_id,
                record.event_date,
                record.country,
                record.active_users,
                record.sessions,
                record.processed_at,
                record.processing_source,
                record.record_key,
            )
            for record in records
        ]

        self.pool.execute_batch(INSERT_NORMALIZED_SQL, data_tuples)

        logger.info(f"Stored {len(records)} normalized records in PostgreSQL")
        return len(records)
