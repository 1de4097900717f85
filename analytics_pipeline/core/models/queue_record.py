"""
ReportMessage model representing one consumed queue record.

The wire format is the JSON produced by the report-fetch workers, which uses
PascalCase keys (UserId, ReportData, ...). Snake case keys are accepted too.
"""

import json
import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from analytics_pipeline.core.errors import MalformedMessageError

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )


class MetricValue(_WireModel):
    """A single (metric name, metric value) pair; the value stays a string."""

    name: str = Field(alias="Name")
    value: str = Field(default="", alias="Value")


class ReportRow(_WireModel):
    """One row-group of a report: ordered dimension values and metric values."""

    dimension_values: list[str] = Field(default_factory=list, alias="DimensionValues")
    metric_values: list[MetricValue] = Field(default_factory=list, alias="MetricValues")


class DimensionInfo(_WireModel):
    name: str = Field(alias="Name")
    display_name: str = Field(default="", alias="DisplayName")


class MetricInfo(_WireModel):
    name: str = Field(alias="Name")
    display_name: str = Field(default="", alias="DisplayName")
    type: str = Field(default="", alias="Type")


class ReportMetadata(_WireModel):
    """Header information describing the report rows."""

    row_count: int = Field(default=0, alias="RowCount")
    dimensions: list[DimensionInfo] = Field(default_factory=list, alias="Dimensions")
    metrics: list[MetricInfo] = Field(default_factory=list, alias="Metrics")


class ReportMessage(_WireModel):
    """
    One consumed unit of work: a report for a (user, property) pair.

    Attributes:
        user_id: Subject the report was fetched for
        property_id: Analytics property the report came from
        generated_at: When the report was generated
        report_data: Ordered row-groups; may be empty for a zero-row report
        metadata: Optional header information
    """

    user_id: str = Field(..., min_length=1, alias="UserId")
    property_id: str = Field(..., min_length=1, alias="PropertyId")
    generated_at: datetime = Field(alias="GeneratedAt")
    report_data: list[ReportRow] = Field(default_factory=list, alias="ReportData")
    metadata: ReportMetadata | None = Field(default=None, alias="Metadata")

    @field_validator("generated_at", mode="before")
    @classmethod
    def trim_fractional_seconds(cls, v):
        """.NET producers emit 7 fractional digits; keep microsecond precision."""
        if isinstance(v, str):
            return _EXCESS_FRACTION.sub(r"\1", v)
        return v

    @classmethod
    def from_payload(cls, payload: str | bytes) -> "ReportMessage":
        """
        Parse a queue payload into a ReportMessage.

        Args:
            payload: JSON text (or UTF-8 bytes) of the message value

        Returns:
            Parsed ReportMessage

        Raises:
            MalformedMessageError: If the payload is not JSON or violates the schema
        """
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedMessageError(f"Payload is not valid UTF-8: {e}") from e

        if payload is None or not payload.strip():
            raise MalformedMessageError("Empty payload", payload)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedMessageError(f"Payload is not valid JSON: {e}", payload) from e

        if not isinstance(data, dict):
            raise MalformedMessageError(
                f"Payload must be a JSON object, got {type(data).__name__}", payload
            )

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedMessageError(
                f"Payload does not match report message schema: {e.error_count()} error(s)",
                payload,
            ) from e

    def to_payload(self) -> str:
        """Serialize to the PascalCase wire format."""
        return self.model_dump_json(by_alias=True)

    def report_data_json(self) -> str:
        """Serialize only the row-groups, as stored in the raw audit copy."""
        return json.dumps(
            [row.model_dump(mode="json", by_alias=True) for row in self.report_data]
        )

    model_config = ConfigDict(
        **_WireModel.model_config,
        json_schema_extra={
            "example": {
                "UserId": "user-123",
                "PropertyId": "properties/987654",
                "GeneratedAt": "2025-11-17T00:00:00Z",
                "ReportData": [
                    {
                        "DimensionValues": ["US", "Chrome"],
                        "MetricValues": [
                            {"Name": "activeUsers", "Value": "5"},
                            {"Name": "sessions", "Value": "10"},
                        ],
                    }
                ],
            }
        },
    )
