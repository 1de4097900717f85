"""
Kafka batch source.

Drains a bounded batch of report messages from a topic per run. Offsets are
stored as messages are read but committed only when the caller confirms the
batch has been persisted.
"""

import threading
import time
from typing import Any, Callable

from confluent_kafka import Consumer, KafkaError, KafkaException, Message

from analytics_pipeline.core.config import KafkaSettings
from analytics_pipeline.core.errors import MalformedMessageError
from analytics_pipeline.core.models import ReportMessage
from analytics_pipeline.observability.logger import get_logger
from analytics_pipeline.observability.metrics import increment_counter, messages_consumed_total

logger = get_logger(__name__)


class ConsumedBatch:
    """
    Accepted messages of one run plus the consumer holding their offsets.

    The batch must be closed; commit() is optional and only called once the
    messages are durably stored.
    """

    def __init__(self, consumer: Any, topic: str):
        self.consumer = consumer
        self.topic = topic
        self.messages: list[ReportMessage] = []
        self.consumed = 0
        self.malformed = 0
        self.stop_reason = ""
        self.error: str | None = None
        self.committed = False
        self._stored_offsets = 0
        self._closed = False

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def empty(self) -> bool:
        return not self.messages

    def commit(self) -> None:
        """
        Synchronously commit the offsets stored for this batch.

        Raises:
            KafkaException: If the broker rejects the commit
        """
        if self._closed:
            raise RuntimeError("Cannot commit a closed batch")
        if self._stored_offsets == 0:
            return

        self.consumer.commit(asynchronous=False)
        self.committed = True
        logger.debug(f"Committed offsets for {self._stored_offsets} messages on {self.topic}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.consumer.close()

    def __enter__(self) -> "ConsumedBatch":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class KafkaBatchSource:
    """
    Reads bounded batches of ReportMessages from a Kafka topic.

    A fresh consumer is created for every batch and closed with it, so
    uncommitted offsets are redelivered on the next run.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        group_id: str = "analytics-processor-group",
        poll_timeout: float = 1.0,
        consumer_factory: Callable[[dict], Any] = Consumer,
    ):
        """
        Args:
            bootstrap_servers: Comma-separated list of Kafka brokers
            topic: Topic carrying report messages
            group_id: Consumer group ID
            poll_timeout: Seconds a single poll may block
            consumer_factory: Builds a consumer from a config dict
        """
        if not bootstrap_servers:
            raise ValueError("bootstrap_servers must be specified")
        if not topic:
            raise ValueError("topic must be specified")

        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.group_id = group_id
        self.poll_timeout = poll_timeout
        self.consumer_factory = consumer_factory

        logger.info(
            f"Initialized KafkaBatchSource (topic: {self.topic}, "
            f"group: {self.group_id}, servers: {self.bootstrap_servers})"
        )

    @classmethod
    def from_settings(cls, settings: KafkaSettings, **kwargs) -> "KafkaBatchSource":
        return cls(
            bootstrap_servers=settings.bootstrap_servers,
            topic=settings.topic,
            group_id=settings.group_id,
            poll_timeout=settings.poll_timeout_seconds,
            **kwargs,
        )

    def consumer_config(self) -> dict[str, Any]:
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "group.id": self.group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": False,
            "enable.auto.offset.store": False,
            "enable.partition.eof": True,
        }

    def consume(
        self,
        max_count: int,
        time_budget: float,
        stop_event: threading.Event | None = None,
    ) -> ConsumedBatch:
        """
        Drain up to max_count accepted messages.

        Stops at max_count, when the time budget runs out, when every
        assigned partition reports end-of-partition, when stop_event is set,
        or on a consumer error, which is kept on batch.error for the caller.

        Args:
            max_count: Maximum number of accepted messages
            time_budget: Seconds to spend consuming
            stop_event: Cooperative stop signal

        Returns:
            ConsumedBatch owning the consumer; the caller must close it
        """
        if max_count <= 0:
            raise ValueError("max_count must be positive")

        consumer = self.consumer_factory(self.consumer_config())
        consumer.subscribe([self.topic])
        batch = ConsumedBatch(consumer, self.topic)

        deadline = time.monotonic() + time_budget
        eof_partitions: set[tuple[str, int]] = set()

        try:
            while len(batch.messages) < max_count:
                if stop_event is not None and stop_event.is_set():
                    batch.stop_reason = "stopped"
                    break

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    batch.stop_reason = "time_budget"
                    break

                message = consumer.poll(min(self.poll_timeout, remaining))
                if message is None:
                    continue

                error = message.error()
                if error is not None:
                    if error.code() == KafkaError._PARTITION_EOF:
                        eof_partitions.add((message.topic(), message.partition()))
                        if self._all_partitions_drained(consumer, eof_partitions):
                            batch.stop_reason = "end_of_partition"
                            break
                        continue

                    logger.error(
                        f"Error consuming from {self.topic}: {error}",
                        extra={"topic": self.topic, "error_code": error.code()},
                    )
                    batch.error = str(error)
                    batch.stop_reason = "consumer_error"
                    break

                eof_partitions.discard((message.topic(), message.partition()))
                self._accept(batch, message)
            else:
                batch.stop_reason = "max_count"

        except KafkaException as e:
            logger.error(f"Kafka consume failed on {self.topic}: {e}", exc_info=True)
            batch.stop_reason = "consumer_error"
            batch.error = str(e)

        logger.info(
            f"Consumed {len(batch.messages)} messages from {self.topic} "
            f"({batch.malformed} malformed, stop: {batch.stop_reason})",
            extra={
                "topic": self.topic,
                "accepted": len(batch.messages),
                "malformed": batch.malformed,
                "stop_reason": batch.stop_reason,
            },
        )
        return batch

    def _accept(self, batch: ConsumedBatch, message: Message) -> None:
        batch.consumed += 1

        try:
            report = ReportMessage.from_payload(message.value() or b"")
        except MalformedMessageError as e:
            batch.malformed += 1
            increment_counter(messages_consumed_total, 1, topic=self.topic, status="malformed")
            logger.warning(
                f"Skipping malformed message at {message.topic()}[{message.partition()}]"
                f"@{message.offset()}: {e}",
                extra={"topic": message.topic(), "partition": message.partition(), "offset": message.offset()},
            )
        else:
            batch.messages.append(report)
            increment_counter(messages_consumed_total, 1, topic=self.topic, status="accepted")

        # Skipped messages are committed along with the batch
        batch.consumer.store_offsets(message=message)
        batch._stored_offsets += 1

    @staticmethod
    def _all_partitions_drained(consumer: Any, eof_partitions: set[tuple[str, int]]) -> bool:
        assignment = consumer.assignment()
        if not assignment:
            return True
        return all((tp.topic, tp.partition) in eof_partitions for tp in assignment)
