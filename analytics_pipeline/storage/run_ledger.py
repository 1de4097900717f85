"""
Run ledger operations.

One analytics_processing_logs row per pipeline run, written from the run's
finally block. Operators query this table to assess pipeline health.
"""

from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from analytics_pipeline.core.models import RunLedgerEntry
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.storage.connection import DatabaseConnectionPool

logger = get_logger(__name__)


class RunLedger:
    """
    Creates and persists run ledger entries.

    Usage:
        ledger = RunLedger(pool)
        entry = ledger.begin_run("Direct")
        try:
            ...
        finally:
            ledger.finish(entry)
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def begin_run(
        self,
        processor_type: str,
        user_id: str = "system",
        property_id: str = "multiple",
    ) -> RunLedgerEntry:
        """
        Start a ledger entry for a run. Nothing is written yet.

        Args:
            processor_type: Pipeline variant tag
            user_id: Subject of the run ("system" for batch-wide runs)
            property_id: Source of the run ("multiple" for batch-wide runs)

        Returns:
            Mutable RunLedgerEntry
        """
        return RunLedgerEntry(
            user_id=user_id,
            property_id=property_id,
            processor_type=processor_type,
        )

    def finish(self, entry: RunLedgerEntry) -> int | None:
        """
        Persist a ledger entry. Failures are logged and not raised, since no
        further recovery is possible for the run's audit trail.

        Args:
            entry: Ledger entry to persist

        Returns:
            Generated log ID, or None if the write failed
        """
        insert_sql = """
            INSERT INTO analytics_processing_logs (
                user_id,
                property_id,
                processed_at,
                records_processed,
                records_normalized,
                records_stored,
                error_message,
                processor_type
            ) VALUES (
                %(user_id)s,
                %(property_id)s,
                %(processed_at)s,
                %(records_processed)s,
                %(records_normalized)s,
                %(records_stored)s,
                %(error_message)s,
                %(processor_type)s
            ) RETURNING id;
        """

        try:
            with self.pool.get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        insert_sql,
                        {
                            "user_id": entry.user_id,
                            "property_id": entry.property_id,
                            "processed_at": entry.processed_at,
                            "records_processed": entry.records_processed,
                            "records_normalized": entry.records_normalized,
                            "records_stored": Jsonb(entry.records_stored),
                            "error_message": entry.error_message[:1000],
                            "processor_type": entry.processor_type,
                        },
                    )
                    result = cur.fetchone()
                conn.commit()

        except (psycopg.Error, RuntimeError) as e:
            logger.error(
                f"Failed to write run ledger entry: {e}",
                extra={"processor_type": entry.processor_type},
                exc_info=True,
            )
            return None

        log_id = result["id"] if result else None
        entry.log_id = log_id

        logger.info(
            f"Recorded run ledger entry {log_id}",
            extra={
                "processor_type": entry.processor_type,
                "records_processed": entry.records_processed,
                "records_normalized": entry.records_normalized,
                "records_stored": entry.records_stored,
                "error_message": entry.error_message,
            },
        )
        return log_id

    def recent_runs(
        self,
        limit: int = 20,
        processor_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Query the most recent ledger entries.

        Args:
            limit: Maximum number of entries to return
            processor_type: Optional variant filter

        Returns:
            List of ledger rows as dictionaries, newest first

        Raises:
            psycopg.DatabaseError: If query fails
        """
        query_sql = """
            SELECT
                id,
                user_id,
                property_id,
                processed_at,
                records_processed,
                records_normalized,
                records_stored,
                error_message,
                processor_type
            FROM analytics_processing_logs
        """
        params: dict[str, Any] = {"limit": limit}

        if processor_type:
            query_sql += " WHERE processor_type = %(processor_type)s"
            params["processor_type"] = processor_type

        query_sql += " ORDER BY processed_at DESC LIMIT %(limit)s"

        try:
            results = self.pool.execute_query(query_sql, params)
        except psycopg.DatabaseError as e:
            logger.error(f"Failed to query run ledger: {e}")
            raise

        logger.debug(f"Found {len(results)} run ledger entries")
        return results

    def failure_summary(self, processor_type: str | None = None) -> dict[str, Any]:
        """
        Summarize run outcomes per processor type.

        Returns:
            Dictionary with total_runs, failed_runs and per-processor counts

        Raises:
            psycopg.DatabaseError: If query fails
        """
        query_sql = """
            SELECT
                processor_type,
                COUNT(*) AS total_runs,
                COUNT(*) FILTER (WHERE error_message <> '') AS failed_runs,
                COALESCE(SUM(records_processed), 0) AS records_processed,
                MAX(processed_at) FILTER (WHERE error_message = '') AS last_success_at
            FROM analytics_processing_logs
        """
        params: dict[str, Any] = {}

        if processor_type:
            query_sql += " WHERE processor_type = %(processor_type)s"
            params["processor_type"] = processor_type

        query_sql += " GROUP BY processor_type ORDER BY processor_type"

        try:
            rows = self.pool.execute_query(query_sql, params)
        except psycopg.DatabaseError as e:
            logger.error(f"Failed to summarize run ledger: {e}")
            raise

        return {
            "total_runs": sum(r["total_runs"] for r in rows),
            "failed_runs": sum(r["failed_runs"] for r in rows),
            "by_processor": {r["processor_type"]: r for r in rows},
        }
