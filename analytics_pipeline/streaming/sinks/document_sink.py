"""
Document sink writing normalized records to Google Cloud Firestore.

The whole batch is committed as one atomic WriteBatch; each record becomes
one document with a generated id.
"""

from datetime import datetime, time, timezone
from typing import Any

from google.cloud import firestore

from analytics_pipeline.core.errors import SinkWriteError
from analytics_pipeline.core.models import NormalizedRecord
from analytics_pipeline.observability.logger import get_logger

from .base_sink import BaseSink

logger = get_logger(__name__)

# Firestore rejects write batches larger than this
MAX_BATCH_WRITES = 500


class DocumentSink(BaseSink):
    """Stores normalized records as Firestore documents."""

    required = False

    def __init__(self, client: firestore.Client, collection: str = "analytics_data"):
        """
        Args:
            client: Firestore client
            collection: Collection receiving one document per record
        """
        self.client = client
        self.collection_name = collection

    @classmethod
    def from_project(cls, project_id: str, collection: str = "analytics_data") -> "DocumentSink":
        return cls(firestore.Client(project=project_id), collection)

    @property
    def name(self) -> str:
        return "firestore"

    @staticmethod
    def to_document(record: NormalizedRecord, document_id: str) -> dict[str, Any]:
        # Firestore stores timestamps, not bare dates
        event_date = datetime.combine(record.event_date, time.min, tzinfo=timezone.utc)
        return {
            "user_id": record.user_id,
            "property_id": record.property_id,
            "event_date": event_date,
            "country": record.country,
            "active_users": record.active_users,
            "sessions": record.sessions,
            "processed_at": record.processed_at,
            "processing_source": record.processing_source,
            "document_id": document_id,
        }

    def write(self, records: list[NormalizedRecord]) -> int:
        if not records:
            return 0

        if len(records) > MAX_BATCH_WRITES:
            raise SinkWriteError(
                self.name,
                f"batch of {len(records)} exceeds the {MAX_BATCH_WRITES} write limit "
                "of one atomic commit; lower max_messages_per_batch",
            )

        batch = self.client.batch()
        collection = self.client.collection(self.collection_name)

        for record in records:
            doc_ref = collection.document()
            batch.set(doc_ref, self.to_document(record, doc_ref.id))

        batch.commit()

        logger.info(f"Stored {len(records)} records in Firestore collection '{self.collection_name}'")
        return len(records)
