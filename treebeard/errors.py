from typing import Optional


class TreebeardError(Exception):
    """Base class for errors raised by the treebeard client."""


class ConfigurationError(TreebeardError, ValueError):
    """Raised from ``TreebeardCore.init`` when the configuration is unusable."""


class DeliveryError(TreebeardError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OrphanedTraceCompletion(TreebeardError):
    """A trace was completed without a matching start. Recorded, never raised."""

    def __init__(self, trace_id: str, span_id: Optional[str], success: bool) -> None:
        super().__init__(f"completed trace {trace_id}/{span_id} was never started")
        self.trace_id = trace_id
        self.span_id = span_id
        self.success = success


class UnknownCallerLocation(TreebeardError):
    """The call stack could not be inspected deep enough."""
