"""
Unit tests for the document, warehouse and HTTP sinks.

The Google clients and the HTTP session are replaced with in-memory fakes.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import NotFound

from analytics_pipeline.core.errors import ConfigurationError, SinkWriteError
from analytics_pipeline.core.http_client import HttpRequestError, JsonHttpClient, RetryConfig
from analytics_pipeline.core.normalizer import normalize
from analytics_pipeline.streaming.sinks import DocumentSink, HttpSink, WarehouseSink
from analytics_pipeline.streaming.sinks.document_sink import MAX_BATCH_WRITES


@pytest.fixture
def records(message_factory):
    message = message_factory(
        rows=[
            (["US"], [("activeUsers", "5"), ("sessions", "10")]),
            (["FR"], [("activeUsers", "2"), ("sessions", "3")]),
            (["DE"], [("activeUsers", "1"), ("sessions", "1")]),
        ]
    )
    return normalize([message], "kafka-direct", datetime(2025, 11, 18, tzinfo=timezone.utc))


# =======================
# DOCUMENT SINK
# =======================

class FakeDocumentRef:
    def __init__(self, doc_id):
        self.id = doc_id


class FakeCollection:
    def __init__(self):
        self.counter = 0

    def document(self):
        self.counter += 1
        return FakeDocumentRef(f"doc-{self.counter}")


class FakeBatch:
    def __init__(self, store):
        self.store = store
        self.pending = []

    def set(self, ref, data):
        self.pending.append((ref.id, data))

    def commit(self):
        self.store.update(dict(self.pending))


class FakeFirestore:
    def __init__(self):
        self.documents = {}
        self.collections = {}

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def batch(self):
        return FakeBatch(self.documents)


@pytest.mark.unit
class TestDocumentSink:
    """Tests for DocumentSink"""

    def test_writes_one_document_per_record(self, records):
        client = FakeFirestore()
        sink = DocumentSink(client)

        assert sink.write(records) == 3
        assert set(client.collections) == {"analytics_data"}
        assert len(client.documents) == 3

        doc = client.documents["doc-1"]
        assert doc["document_id"] == "doc-1"
        assert doc["country"] == "US"
        assert doc["active_users"] == 5
        assert doc["event_date"] == datetime(2025, 11, 17, tzinfo=timezone.utc)

    def test_batch_not_committed_on_error(self, records):
        client = FakeFirestore()
        batch = FakeBatch(client.documents)
        batch.commit = MagicMock(side_effect=RuntimeError("deadline exceeded"))
        client.batch = lambda: batch

        with pytest.raises(RuntimeError):
            DocumentSink(client).write(records)

        assert client.documents == {}

    def test_oversized_batch_rejected(self, records):
        with pytest.raises(SinkWriteError):
            DocumentSink(FakeFirestore()).write(records * (MAX_BATCH_WRITES // 3 + 1))

    def test_empty_batch(self):
        assert DocumentSink(FakeFirestore()).write([]) == 0

    def test_optional(self):
        assert DocumentSink(FakeFirestore()).required is False


# =======================
# WAREHOUSE SINK
# =======================

class FakeBigQuery:
    """Streaming-insert fake that deduplicates on insert ids"""

    def __init__(self, table_exists=True, rejected_indexes=()):
        self.table_exists = table_exists
        self.rejected_indexes = set(rejected_indexes)
        self.created_tables = []
        self.rows = {}
        self.get_table_calls = 0

    def get_table(self, table_id):
        self.get_table_calls += 1
        if not self.table_exists:
            raise NotFound(f"Table {table_id} not found")
        return table_id

    def create_table(self, table, exists_ok=False):
        self.created_tables.append(table)
        self.table_exists = True
        return table

    def insert_rows_json(self, table_id, rows, row_ids=None, skip_invalid_rows=False, ignore_unknown_values=False):
        assert skip_invalid_rows and ignore_unknown_values
        errors = []
        for index, (row, row_id) in enumerate(zip(rows, row_ids)):
            if index in self.rejected_indexes:
                errors.append({"index": index, "errors": [{"reason": "invalid"}]})
                continue
            self.rows[row_id] = row
        return errors


@pytest.mark.unit
class TestWarehouseSink:
    """Tests for WarehouseSink"""

    def test_inserts_rows(self, records):
        client = FakeBigQuery()
        sink = WarehouseSink(client, "proj")

        assert sink.write(records) == 3
        assert sink.table_id == "proj.analytics_dataset.normalized_analytics_data"
        assert {row["country"] for row in client.rows.values()} == {"US", "FR", "DE"}

    def test_replayed_batch_is_deduplicated(self, records):
        client = FakeBigQuery()
        sink = WarehouseSink(client, "proj")

        sink.write(records)
        sink.write(records)

        assert len(client.rows) == 3
        assert set(client.rows) == {r.record_key for r in records}

    def test_creates_missing_table_once(self, records):
        client = FakeBigQuery(table_exists=False)
        sink = WarehouseSink(client, "proj", "ds", "tbl")

        sink.write(records)
        sink.write(records)

        assert len(client.created_tables) == 1
        table = client.created_tables[0]
        assert table.time_partitioning.field == "event_date"
        assert [field.name for field in table.schema] == [
            "user_id", "property_id", "event_date", "country",
            "active_users", "sessions", "processed_at", "processing_source",
        ]
        assert client.get_table_calls == 1

    def test_rejected_rows_subtracted(self, records):
        client = FakeBigQuery(rejected_indexes={1})
        assert WarehouseSink(client, "proj").write(records) == 2


# =======================
# HTTP SINK
# =======================

class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"{}" if payload is not None else b""

    def json(self):
        return self._payload


@pytest.mark.unit
class TestHttpSink:
    """Tests for HttpSink"""

    def make_sink(self, monkeypatch, responses, calls):
        client = JsonHttpClient("http://jdbc-sink:8080/", retry=RetryConfig(max_attempts=2, multiplier=0, max_wait=0))

        def fake_request(**kwargs):
            calls.append(kwargs)
            return responses.pop(0)

        monkeypatch.setattr(client.session, "request", fake_request)
        return HttpSink(client, "jdbc:postgresql://db/analytics", "normalized_analytics_data")

    def test_posts_payload(self, monkeypatch, records):
        calls = []
        sink = self.make_sink(monkeypatch, [FakeResponse(200, {"inserted": 3})], calls)

        assert sink.write(records) == 3
        assert calls[0]["method"] == "POST"
        assert calls[0]["url"] == "http://jdbc-sink:8080/insert"
        body = calls[0]["json"]
        assert body["connection_string"] == "jdbc:postgresql://db/analytics"
        assert body["table_name"] == "normalized_analytics_data"
        assert len(body["records"]) == 3
        assert body["records"][0]["event_date"] == "2025-11-17"

    def test_retries_transient_status(self, monkeypatch, records):
        calls = []
        sink = self.make_sink(monkeypatch, [FakeResponse(503), FakeResponse(200, {})], calls)

        assert sink.write(records) == 3
        assert len(calls) == 2

    def test_client_error_raises_sink_error(self, monkeypatch, records):
        calls = []
        sink = self.make_sink(monkeypatch, [FakeResponse(400)], calls)

        with pytest.raises(SinkWriteError) as exc_info:
            sink.write(records)

        assert exc_info.value.sink_name == "jdbc_sink"
        assert isinstance(exc_info.value.__cause__, HttpRequestError)
        assert len(calls) == 1

    def test_requires_url(self):
        with pytest.raises(ConfigurationError):
            HttpSink.from_url("", "jdbc:postgresql://db/analytics")
