"""
Kafka producer for report messages.

Publishes ReportMessages in the PascalCase wire format, keyed by user id,
with idempotent delivery and broker acknowledgement from all replicas.
"""

import time
from typing import Any, Callable

from confluent_kafka import Producer

from analytics_pipeline.core.config import KafkaSettings
from analytics_pipeline.core.errors import PublishError
from analytics_pipeline.core.models import ReportMessage
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.observability.metrics import increment_counter, messages_produced_total

logger = get_logger(__name__)


class KafkaReportProducer:
    """
    Produces report messages and waits for delivery.

    Usage:
        producer = KafkaReportProducer("localhost:9092", "analytics-reports")
        producer.produce_report(message)
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        client_id: str = "analytics-producer",
        flush_timeout: float = 30.0,
        producer_factory: Callable[[dict], Any] = Producer,
    ):
        if not bootstrap_servers:
            raise ValueError("bootstrap_servers must be specified")
        if not topic:
            raise ValueError("topic must be specified")

        self.topic = topic
        self.flush_timeout = flush_timeout
        self.config = {
            "bootstrap.servers": bootstrap_servers,
            "client.id": client_id,
            "acks": "all",
            "enable.idempotence": True,
            "retries": 3,
            "retry.backoff.ms": 100,
            "retry.backoff.max.ms": 1000,
        }
        self.producer = producer_factory(self.config)

    @classmethod
    def from_settings(cls, settings: KafkaSettings, **kwargs) -> "KafkaReportProducer":
        return cls(
            bootstrap_servers=settings.bootstrap_servers,
            topic=settings.topic,
            client_id=settings.producer_client_id,
            **kwargs,
        )

    def produce_report(self, message: ReportMessage, key: str | None = None) -> None:
        """
        Publish one report message and block until it is acknowledged.

        Args:
            message: Report to publish
            key: Partition key, defaults to the message's user id

        Raises:
            PublishError: If delivery fails or is not confirmed within flush_timeout
        """
        key = key or message.user_id
        delivery_errors: list[str] = []

        def on_delivery(err, msg) -> None:
            if err is not None:
                delivery_errors.append(str(err))
            else:
                logger.debug(
                    f"Delivered report to {msg.topic()}[{msg.partition()}]@{msg.offset()}",
                    extra={"user_id": message.user_id, "property_id": message.property_id},
                )

        headers = [
            ("content-type", b"application/json"),
            ("timestamp", str(int(time.time() * 1000)).encode()),
        ]

        self.producer.produce(
            self.topic,
            key=key.encode(),
            value=message.to_payload().encode(),
            headers=headers,
            on_delivery=on_delivery,
        )

        remaining = self.producer.flush(self.flush_timeout)

        if delivery_errors or remaining > 0:
            increment_counter(messages_produced_total, 1, topic=self.topic, status="failed")
            reason = "; ".join(delivery_errors) or f"{remaining} message(s) not delivered in {self.flush_timeout}s"
            logger.error(
                f"Failed to publish report for user {message.user_id}: {reason}",
                extra={"topic": self.topic, "property_id": message.property_id},
            )
            raise PublishError(f"Failed to publish report to {self.topic}: {reason}")

        increment_counter(messages_produced_total, 1, topic=self.topic, status="delivered")
        logger.info(
            f"Published report with {len(message.report_data)} rows to {self.topic}",
            extra={"user_id": message.user_id, "property_id": message.property_id},
        )

    def close(self) -> None:
        self.producer.flush(self.flush_timeout)
