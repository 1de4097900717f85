"""
HTTP clients for the external collaborators of the report-fetch worker.

Only the narrow interfaces are implemented: fetching stored credentials for a
user and running a tabular report with them.
"""

from analytics_pipeline.core.http_client import HttpRequestError, JsonHttpClient
from analytics_pipeline.core.models import Credentials, DateRange, TabularReport
from analytics_pipeline.observability.logger import get_logger

logger = get_logger(__name__)


class HttpCredentialClient:
    """Reads credentials from the Token & Credential service."""

    def __init__(self, client: JsonHttpClient):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "HttpCredentialClient":
        return cls(JsonHttpClient(url))

    def get_credentials(self, user_id: str) -> Credentials | None:
        """
        Fetch the active credentials of a user.

        Returns:
            Credentials, or None if the service has none for the user

        Raises:
            HttpRequestError: On any other non-success response
        """
        try:
            payload = self.client.get_json(f"tokens/{user_id}")
        except HttpRequestError as e:
            if e.status_code == 404:
                return None
            raise

        if not payload:
            return None

        return Credentials.model_validate({"user_id": user_id, **payload})


class HttpReportSource:
    """Runs reports through the report-source service."""

    def __init__(self, client: JsonHttpClient):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "HttpReportSource":
        return cls(JsonHttpClient(url))

    def fetch_report(
        self,
        credentials: Credentials,
        property_id: str,
        dimensions: list[str],
        metrics: list[str],
        date_range: DateRange,
    ) -> TabularReport:
        body = {
            "access_token": credentials.access_token,
            "property_id": property_id,
            "dimensions": dimensions,
            "metrics": metrics,
            "date_range": date_range.model_dump(),
        }
        payload = self.client.post_json("reports", body)

        report = TabularReport.model_validate(payload or {})
        logger.debug(
            f"Fetched report with {len(report.rows)} rows for property {property_id}",
            extra={"property_id": property_id},
        )
        return report
