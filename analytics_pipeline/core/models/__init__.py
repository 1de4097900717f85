"""
Core data models for the analytics ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .credentials import Credentials, DateRange, ReportHeader, TabularReport
from .normalized_record import NormalizedRecord
from .queue_record import (
    DimensionInfo,
    MetricInfo,
    MetricValue,
    ReportMessage,
    ReportMetadata,
    ReportRow,
)
from .raw_record import RawRecord
from .run_ledger_entry import RunLedgerEntry

__all__ = [
    "ReportMessage",
    "ReportRow",
    "MetricValue",
    "ReportMetadata",
    "DimensionInfo",
    "MetricInfo",
    "RawRecord",
    "NormalizedRecord",
    "RunLedgerEntry",
    "Credentials",
    "DateRange",
    "ReportHeader",
    "TabularReport",
]
