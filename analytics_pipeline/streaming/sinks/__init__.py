"""
Sinks for normalized analytics records.
"""

from .base_sink import BaseSink
from .document_sink import DocumentSink
from .http_sink import HttpSink
from .relational_sink import RelationalSink
from .warehouse_sink import WarehouseSink

__all__ = [
    "BaseSink",
    "RelationalSink",
    "DocumentSink",
    "WarehouseSink",
    "HttpSink",
]
