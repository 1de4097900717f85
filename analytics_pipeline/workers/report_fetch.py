"""
Report-fetch job.

Obtains credentials for a configured user, fetches a report for a property
and publishes it to the queue as a ReportMessage.
"""

import threading
from datetime import datetime, timezone
from typing import Protocol

from analytics_pipeline.core.config import ReportFetchWorkerConfig
from analytics_pipeline.core.errors import ConfigurationError
from analytics_pipeline.core.models import (
    Credentials,
    DateRange,
    DimensionInfo,
    MetricInfo,
    MetricValue,
    ReportMessage,
    ReportMetadata,
    ReportRow,
    TabularReport,
)
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.streaming.kafka_producer import KafkaReportProducer

logger = get_logger(__name__)


class CredentialProvider(Protocol):
    def get_credentials(self, user_id: str) -> Credentials | None: ...


class ReportSource(Protocol):
    def fetch_report(
        self,
        credentials: Credentials,
        property_id: str,
        dimensions: list[str],
        metrics: list[str],
        date_range: DateRange,
    ) -> TabularReport: ...


def report_to_message(
    report: TabularReport,
    user_id: str,
    property_id: str,
    generated_at: datetime | None = None,
) -> ReportMessage:
    """
    Convert a tabular report into the queue message shape.

    Metric values are paired with metric header names by position.
    """
    metric_names = [header.name for header in report.metric_headers]

    rows = []
    for row in report.rows:
        values = [str(v) for v in row.get("metric_values", [])]
        rows.append(
            ReportRow(
                dimension_values=[str(v) for v in row.get("dimension_values", [])],
                metric_values=[
                    MetricValue(name=name, value=value)
                    for name, value in zip(metric_names, values)
                ],
            )
        )

    return ReportMessage(
        user_id=user_id,
        property_id=property_id,
        generated_at=generated_at or datetime.now(timezone.utc),
        report_data=rows,
        metadata=ReportMetadata(
            row_count=len(report.rows),
            dimensions=[
                DimensionInfo(name=h.name, display_name=h.display_name)
                for h in report.dimension_headers
            ],
            metrics=[
                MetricInfo(name=h.name, display_name=h.display_name, type=h.type)
                for h in report.metric_headers
            ],
        ),
    )


class ReportFetchJob:
    """Fetches one report and publishes it."""

    def __init__(
        self,
        config: ReportFetchWorkerConfig,
        credentials: CredentialProvider,
        reports: ReportSource,
        producer: KafkaReportProducer,
    ):
        if not config.user_id or not config.property_id:
            raise ConfigurationError("report_fetch requires user_id and property_id")

        self.config = config
        self.credentials = credentials
        self.reports = reports
        self.producer = producer

    def __call__(self, stop_event: threading.Event | None = None) -> ReportMessage | None:
        return self.run_once()

    def run_once(self) -> ReportMessage | None:
        """
        Fetch and publish one report.

        Returns:
            The published message, or None when no credentials exist

        Raises:
            PublishError or collaborator errors; the scheduler cools down on them
        """
        user_id = self.config.user_id
        property_id = self.config.property_id

        logger.info(
            f"Fetching analytics report for user: {user_id}, property: {property_id}",
            extra={"user_id": user_id, "property_id": property_id},
        )

        credentials = self.credentials.get_credentials(user_id)
        if credentials is None:
            logger.warning(f"No credentials found for user: {user_id}", extra={"user_id": user_id})
            return None

        report = self.reports.fetch_report(
            credentials,
            property_id,
            list(self.config.dimensions),
            list(self.config.metrics),
            DateRange(start_date=self.config.start_date, end_date=self.config.end_date),
        )

        message = report_to_message(report, user_id, property_id)
        self.producer.produce_report(message, key=user_id)

        logger.info(
            f"Sent analytics report to queue for user: {user_id}, rows: {len(message.report_data)}",
            extra={"user_id": user_id, "property_id": property_id},
        )
        return message
