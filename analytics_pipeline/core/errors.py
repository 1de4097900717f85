"""
Exception types raised by pipeline components.

Components raise these and let them propagate; the pipeline run wrapper is
the only place that catches everything and records it in the run ledger.
"""


class PipelineError(Exception):
    """Base class for analytics pipeline errors."""
    pass


class ConfigurationError(PipelineError, ValueError):
    """Raised when worker configuration is missing or invalid."""
    pass


class MalformedMessageError(PipelineError, ValueError):
    """Raised when a queue payload cannot be parsed into a report message."""

    def __init__(self, message: str, payload: str | None = None):
        super().__init__(message)
        self.payload = payload


class RawPersistenceError(PipelineError):
    """Raised when raw audit copies cannot be written. Fatal to the run."""
    pass


class SinkWriteError(PipelineError):
    """Raised when a sink fails to store a normalized batch."""

    def __init__(self, sink_name: str, message: str):
        super().__init__(f"{sink_name}: {message}")
        self.sink_name = sink_name


class PublishError(PipelineError):
    """Raised when a report message is not acknowledged by the broker."""
    pass


class SourceReadError(PipelineError):
    """Raised when the queue could not be read. The run is aborted uncommitted."""
    pass
