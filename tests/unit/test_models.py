"""
Unit tests for Pydantic data models.

Tests wire parsing of queue records, constraint enforcement and the row
rendering used by the sinks.
"""

import json
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from analytics_pipeline.core.errors import MalformedMessageError
from analytics_pipeline.core.models import (
    NormalizedRecord,
    RawRecord,
    ReportMessage,
    RunLedgerEntry,
)

WIRE_PAYLOAD = {
    "UserId": "user-123",
    "PropertyId": "properties/987654",
    "GeneratedAt": "2025-11-17T08:30:15.1234567Z",
    "ReportData": [
        {
            "DimensionValues": ["US", "Chrome"],
            "MetricValues": [
                {"Name": "activeUsers", "Value": "5"},
                {"Name": "sessions", "Value": "10"},
            ],
        }
    ],
    "Metadata": {
        "RowCount": 1,
        "Dimensions": [{"Name": "country", "DisplayName": "Country"}],
        "Metrics": [{"Name": "activeUsers", "DisplayName": "Active users", "Type": "TYPE_INTEGER"}],
    },
}


@pytest.mark.unit
class TestReportMessage:
    """Tests for ReportMessage parsing"""

    def test_parse_wire_payload(self):
        """Test parsing the PascalCase wire format"""
        message = ReportMessage.from_payload(json.dumps(WIRE_PAYLOAD))

        assert message.user_id == "user-123"
        assert message.property_id == "properties/987654"
        assert message.generated_at == datetime(2025, 11, 17, 8, 30, 15, 123456, tzinfo=timezone.utc)
        assert message.report_data[0].dimension_values == ["US", "Chrome"]
        assert message.report_data[0].metric_values[1].name == "sessions"
        assert message.metadata.row_count == 1
        assert message.metadata.metrics[0].type == "TYPE_INTEGER"

    def test_parse_bytes_payload(self):
        message = ReportMessage.from_payload(json.dumps(WIRE_PAYLOAD).encode("utf-8"))
        assert message.user_id == "user-123"

    def test_snake_case_keys_accepted(self):
        payload = {
            "user_id": "u",
            "property_id": "p",
            "generated_at": "2025-11-17T00:00:00Z",
            "report_data": [{"dimension_values": ["US"], "metric_values": [{"name": "sessions", "value": "1"}]}],
        }
        message = ReportMessage.from_payload(json.dumps(payload))
        assert message.report_data[0].metric_values[0].value == "1"

    def test_metadata_optional(self):
        payload = {k: v for k, v in WIRE_PAYLOAD.items() if k != "Metadata"}
        assert ReportMessage.from_payload(json.dumps(payload)).metadata is None

    def test_empty_report_data_allowed(self):
        payload = {**WIRE_PAYLOAD, "ReportData": []}
        assert ReportMessage.from_payload(json.dumps(payload)).report_data == []

    def test_round_trip_keeps_wire_keys(self):
        message = ReportMessage.from_payload(json.dumps(WIRE_PAYLOAD))
        data = json.loads(message.to_payload())
        assert set(data) >= {"UserId", "PropertyId", "GeneratedAt", "ReportData"}

    def test_frozen(self):
        message = ReportMessage.from_payload(json.dumps(WIRE_PAYLOAD))
        with pytest.raises(ValidationError):
            message.user_id = "other"

    def test_shares_wire_config_and_example(self):
        config = ReportMessage.model_config
        assert config["frozen"] is True
        assert config["populate_by_name"] is True
        assert config["extra"] == "ignore"

        example = ReportMessage.model_json_schema()["example"]
        assert ReportMessage.model_validate(example).user_id == "user-123"

    @pytest.mark.parametrize(
        "payload",
        [
            "",
            "   ",
            "not json",
            "[1, 2, 3]",
            json.dumps({"PropertyId": "p", "GeneratedAt": "2025-11-17T00:00:00Z"}),
            json.dumps({**WIRE_PAYLOAD, "UserId": ""}),
            json.dumps({**WIRE_PAYLOAD, "GeneratedAt": "yesterday"}),
            json.dumps({**WIRE_PAYLOAD, "ReportData": "rows"}),
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(MalformedMessageError):
            ReportMessage.from_payload(payload)

    def test_invalid_utf8(self):
        with pytest.raises(MalformedMessageError):
            ReportMessage.from_payload(b"\xff\xfe{")

    def test_malformed_error_is_value_error(self):
        with pytest.raises(ValueError):
            ReportMessage.from_payload("{")


@pytest.mark.unit
class TestRawRecord:
    """Tests for RawRecord"""

    def test_from_message(self, sample_message):
        raw = RawRecord.from_message(sample_message, "kafka-topic")

        assert raw.user_id == sample_message.user_id
        assert raw.timestamp == sample_message.generated_at
        assert raw.source == "kafka-topic"
        assert json.loads(raw.json_data)[0]["DimensionValues"] == ["US"]
        assert raw.raw_id is None


@pytest.mark.unit
class TestNormalizedRecord:
    """Tests for NormalizedRecord"""

    def make(self, **overrides):
        fields = dict(
            user_id="u",
            property_id="p",
            event_date=date(2025, 11, 17),
            country="US",
            active_users=5,
            sessions=10,
            processing_source="kafka-direct",
            processed_at=datetime(2025, 11, 18, 9, 0, 0, 500000, tzinfo=timezone(timedelta(hours=1))),
            record_key="abc",
        )
        fields.update(overrides)
        return NormalizedRecord(**fields)

    def test_to_row(self):
        row = self.make().to_row()

        assert row == {
            "user_id": "u",
            "property_id": "p",
            "event_date": "2025-11-17",
            "country": "US",
            "active_users": 5,
            "sessions": 10,
            "processed_at": "2025-11-18T08:00:00Z",
            "processing_source": "kafka-direct",
        }

    def test_country_length_enforced(self):
        with pytest.raises(ValidationError):
            self.make(country="x" * 101)


@pytest.mark.unit
class TestRunLedgerEntry:
    """Tests for RunLedgerEntry"""

    def test_defaults(self):
        entry = RunLedgerEntry(processor_type="Direct")

        assert entry.user_id == "system"
        assert entry.property_id == "multiple"
        assert entry.records_stored == {}
        assert entry.error_message == ""
        assert not entry.failed

    def test_add_error_joins_and_truncates(self):
        entry = RunLedgerEntry(processor_type="Direct")
        entry.add_error("firestore: unavailable")
        entry.add_error("bigquery: quota")

        assert entry.error_message == "firestore: unavailable; bigquery: quota"
        assert entry.failed

        entry.add_error("x" * 2000)
        assert len(entry.error_message) == 1000

    def test_stored_in(self):
        entry = RunLedgerEntry(processor_type="JDBC", records_stored={"postgresql": 3})
        assert entry.stored_in("postgresql") == 3
        assert entry.stored_in("jdbc_sink") == 0

    def test_processor_type_required(self):
        with pytest.raises(ValidationError):
            RunLedgerEntry()
