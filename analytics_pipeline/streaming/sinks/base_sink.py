"""
Base sink interface for normalized record destinations.

All sinks must inherit from BaseSink and implement write().
"""

from abc import ABC, abstractmethod

from analytics_pipeline.core.models import NormalizedRecord


class BaseSink(ABC):
    """
    Abstract base class for sinks.

    A sink stores a whole normalized batch and reports how many records it
    accepted. Required sinks abort the run when they fail; optional sinks
    only contribute an error to the run ledger.
    """

    required: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the sink identifier used in ledger counts and metrics."""
        pass

    @abstractmethod
    def write(self, records: list[NormalizedRecord]) -> int:
        """
        Store a batch of normalized records.

        Args:
            records: Normalized records to store

        Returns:
            Number of records the sink accepted

        Raises:
            SinkWriteError or a client library error if the batch failed
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, required={self.required})"
