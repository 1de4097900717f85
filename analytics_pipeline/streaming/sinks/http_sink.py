"""
HTTP sink forwarding normalized records to the external JDBC sink service.

The service accepts {connection_string, table_name, records} on POST
<url>/insert and performs the database insert on its side.
"""

from analytics_pipeline.core.errors import ConfigurationError, SinkWriteError
from analytics_pipeline.core.http_client import HttpRequestError, JsonHttpClient
from analytics_pipeline.core.models import NormalizedRecord
from analytics_pipeline.observability.logger import get_logger

from .base_sink import BaseSink

logger = get_logger(__name__)


class HttpSink(BaseSink):
    """Posts normalized batches to the JDBC sink service."""

    required = False

    def __init__(
        self,
        client: JsonHttpClient,
        connection_string: str,
        table_name: str = "normalized_analytics_data",
    ):
        self.client = client
        self.connection_string = connection_string
        self.table_name = table_name

    @classmethod
    def from_url(
        cls,
        url: str,
        connection_string: str,
        table_name: str = "normalized_analytics_data",
    ) -> "HttpSink":
        if not url:
            raise ConfigurationError("jdbc_sink_url is required for the JDBC sink")
        return cls(JsonHttpClient(url), connection_string, table_name)

    @property
    def name(self) -> str:
        return "jdbc_sink"

    def build_payload(self, records: list[NormalizedRecord]) -> dict:
        return {
            "connection_string": self.connection_string,
            "table_name": self.table_name,
            "records": [record.to_row() for record in records],
        }

    def write(self, records: list[NormalizedRecord]) -> int:
        if not records:
            return 0

        try:
            self.client.post_json("insert", self.build_payload(records))
        except HttpRequestError as e:
            raise SinkWriteError(self.name, str(e)) from e

        logger.info(
            f"Sent {len(records)} records to JDBC sink",
            extra={"table_name": self.table_name},
        )
        return len(records)
