"""
Warehouse sink writing normalized records to Google BigQuery.

The destination table is created on first use with a fixed schema,
partitioned by day on event_date. Rows are streamed with insert ids taken
from the record key, so a replayed batch is deduplicated by BigQuery.
"""

from google.api_core.exceptions import NotFound
from google.cloud import bigquery

from analytics_pipeline.core.models import NormalizedRecord
from analytics_pipeline.observability.logger import get_logger

from .base_sink import BaseSink

logger = get_logger(__name__)

TABLE_SCHEMA = [
    bigquery.SchemaField("user_id", "STRING", description="User ID"),
    bigquery.SchemaField("property_id", "STRING", description="Property ID"),
    bigquery.SchemaField("event_date", "DATE", description="Event Date"),
    bigquery.SchemaField("country", "STRING", description="Country"),
    bigquery.SchemaField("active_users", "INTEGER", description="Active Users"),
    bigquery.SchemaField("sessions", "INTEGER", description="Sessions"),
    bigquery.SchemaField("processed_at", "TIMESTAMP", description="Processed At"),
    bigquery.SchemaField("processing_source", "STRING", description="Processing Source"),
]


class WarehouseSink(BaseSink):
    """Streams normalized records into a BigQuery table."""

    required = False

    def __init__(
        self,
        client: bigquery.Client,
        project_id: str,
        dataset: str = "analytics_dataset",
        table: str = "normalized_analytics_data",
    ):
        """
        Args:
            client: BigQuery client
            project_id: Project owning the dataset
            dataset: Dataset name
            table: Table name
        """
        self.client = client
        self.table_id = f"{project_id}.{dataset}.{table}"
        self._table_ready = False

    @classmethod
    def from_project(
        cls,
        project_id: str,
        dataset: str = "analytics_dataset",
        table: str = "normalized_analytics_data",
    ) -> "WarehouseSink":
        return cls(bigquery.Client(project=project_id), project_id, dataset, table)

    @property
    def name(self) -> str:
        return "bigquery"

    def ensure_table(self) -> None:
        """Create the destination table if it does not exist yet."""
        if self._table_ready:
            return

        try:
            self.client.get_table(self.table_id)
        except NotFound:
            table = bigquery.Table(self.table_id, schema=TABLE_SCHEMA)
            table.time_partitioning = bigquery.TimePartitioning(
                type_=bigquery.TimePartitioningType.DAY,
                field="event_date",
            )
            self.client.create_table(table, exists_ok=True)
            logger.info(f"Created BigQuery table {self.table_id}")

        self._table_ready = True

    def write(self, records: list[NormalizedRecord]) -> int:
        if not records:
            return 0

        self.ensure_table()

        rows = [record.to_row() for record in records]
        row_ids = [record.record_key for record in records]

        errors = self.client.insert_rows_json(
            self.table_id,
            rows,
            row_ids=row_ids,
            skip_invalid_rows=True,
            ignore_unknown_values=True,
        )

        rejected = {entry.get("index") for entry in errors}
        for entry in errors:
            logger.error(
                f"BigQuery rejected row {entry.get('index')}: {entry.get('errors')}",
                extra={"table_id": self.table_id},
            )

        stored = len(records) - len(rejected)
        logger.info(f"Stored {stored} records in BigQuery table {self.table_id}")
        return stored
