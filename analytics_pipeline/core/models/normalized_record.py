"""
NormalizedRecord model representing one canonical analytics fact.
"""

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NormalizedRecord(BaseModel):
    """
    Canonical analytics fact derived from one report row-group.

    Attributes:
        user_id: Subject the report belongs to
        property_id: Analytics property the report came from
        event_date: Date part of the message generation timestamp
        country: First dimension value of the row-group, "Unknown" if absent
        active_users: Value of the first metric whose name contains "activeuser"
        sessions: Value of the first metric whose name contains "session"
        processing_source: Pipeline variant that produced the record
        processed_at: When the record was normalized
        record_key: Deterministic fingerprint used as the warehouse insert id
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, max_length=255)
    property_id: str = Field(..., min_length=1, max_length=255)
    event_date: date
    country: str = Field(..., max_length=100)
    active_users: int = 0
    sessions: int = 0
    processing_source: str = Field(..., min_length=1, max_length=100)
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    record_key: str

    def to_row(self) -> dict[str, Any]:
        """
        Render as a JSON-safe row keyed by store column names.

        The record key is not part of the row; sinks that deduplicate pass it
        separately.
        """
        processed_at = self.processed_at
        if processed_at.tzinfo is not None:
            processed_at = processed_at.astimezone(timezone.utc)

        return {
            "user_id": self.user_id,
            "property_id": self.property_id,
            "event_date": self.event_date.isoformat(),
            "country": self.country,
            "active_users": self.active_users,
            "sessions": self.sessions,
            "processed_at": processed_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "processing_source": self.processing_source,
        }
