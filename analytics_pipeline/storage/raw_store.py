"""
Raw audit copies of consumed report messages.

Every accepted queue record is written here, untouched, before normalization
is trusted. A failure is fatal to the run.
"""

import psycopg

from analytics_pipeline.core.errors import RawPersistenceError
from analytics_pipeline.core.models import RawRecord, ReportMessage
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.storage.connection import DatabaseConnectionPool

logger = get_logger(__name__)

INSERT_RAW_SQL = """
    INSERT INTO raw_analytics_data (
        user_id,
        property_id,
        timestamp,
        json_data,
        created_at,
        source
    ) VALUES (
        %(user_id)s,
        %(property_id)s,
        %(timestamp)s,
        %(json_data)s,
        %(created_at)s,
        %(source)s
    );
"""


class RawStoreWriter:
    """
    Appends one raw_analytics_data row per consumed report message.

    Usage:
        writer = RawStoreWriter(pool, provenance="kafka-topic")
        written = writer.persist_raw(messages)
    """

    def __init__(self, pool: DatabaseConnectionPool, provenance: str):
        """
        Args:
            pool: Database connection pool
            provenance: Tag identifying the pipeline path writing the rows
        """
        self.pool = pool
        self.provenance = provenance

    def build_records(self, messages: list[ReportMessage]) -> list[RawRecord]:
        return [RawRecord.from_message(message, self.provenance) for message in messages]

    def persist_raw(self, messages: list[ReportMessage]) -> int:
        """
        Persist audit copies of a batch in a single transaction.

        Args:
            messages: Accepted report messages

        Returns:
            Number of raw rows written

        Raises:
            RawPersistenceError: If the batch could not be written
        """
        if not messages:
            return 0

        records = self.build_records(messages)
        params = [
            {
                "user_id": record.user_id,
                "property_id": record.property_id,
                "timestamp": record.timestamp,
                "json_data": record.json_data,
                "created_at": record.created_at,
                "source": record.source,
            }
            for record in records
        ]

        try:
            self.pool.execute_batch(INSERT_RAW_SQL, params)
        except (psycopg.Error, RuntimeError) as e:
            logger.error(f"Failed to store raw records in PostgreSQL: {e}")
            raise RawPersistenceError(f"Failed to store {len(records)} raw records: {e}") from e

        logger.info(
            f"Stored {len(records)} raw records in PostgreSQL",
            extra={"source": self.provenance, "count": len(records)},
        )
        return len(records)
