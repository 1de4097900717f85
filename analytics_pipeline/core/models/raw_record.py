"""
RawRecord model representing the audit copy of a consumed report message.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from .queue_record import ReportMessage


class RawRecord(BaseModel):
    """
    Untouched audit copy of one report message, kept for replay.

    Attributes:
        raw_id: Auto-increment primary key (set by the database)
        user_id: Subject the report belongs to
        property_id: Analytics property the report came from
        timestamp: Original generation timestamp of the message
        json_data: Serialized row-group payload (opaque text)
        source: Provenance tag of the pipeline path that wrote it
        created_at: When the audit copy was written
    """

    model_config = ConfigDict(frozen=True)

    raw_id: int | None = None
    user_id: str = Field(..., min_length=1, max_length=255)
    property_id: str = Field(..., min_length=1, max_length=255)
    timestamp: datetime
    json_data: str
    source: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_message(cls, message: ReportMessage, source: str) -> "RawRecord":
        return cls(
            user_id=message.user_id,
            property_id=message.property_id,
            timestamp=message.generated_at,
            json_data=message.report_data_json(),
            source=source,
        )
