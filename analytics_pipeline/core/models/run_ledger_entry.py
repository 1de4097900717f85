"""
RunLedgerEntry model representing the outcome of one pipeline run.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class RunLedgerEntry(BaseModel):
    """
    Per-run audit row. Created when a run starts, mutated as stages
    complete and persisted exactly once when the run ends.

    Attributes:
        log_id: Auto-increment primary key (set by the database)
        user_id: Subject of the run, "system" for batch-wide runs
        property_id: Source of the run, "multiple" for batch-wide runs
        processed_at: When the run started
        records_processed: Queue records accepted into the run
        records_normalized: Normalized records produced
        records_stored: Records stored, keyed by sink name
        error_message: Terminal or aggregated sink error, empty if none
        processor_type: Pipeline variant tag ("Direct", "JDBC")
    """

    log_id: int | None = None
    user_id: str = "system"
    property_id: str = "multiple"
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    records_processed: int = 0
    records_normalized: int = 0
    records_stored: dict[str, int] = Field(default_factory=dict)
    error_message: str = Field(default="", max_length=1000)
    processor_type: str = Field(..., min_length=1, max_length=100)

    def stored_in(self, sink_name: str) -> int:
        return self.records_stored.get(sink_name, 0)

    def add_error(self, message: str) -> None:
        """Append an error, keeping the column limit of 1000 characters."""
        combined = f"{self.error_message}; {message}" if self.error_message else message
        self.error_message = combined[:1000]

    @property
    def failed(self) -> bool:
        return bool(self.error_message)
