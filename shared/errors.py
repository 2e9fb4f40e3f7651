"""
Shared error handling for the catalog service.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for catalog services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Malformed input, rejected before either store is involved."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Point lookup or mutation on a missing or inactive record."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class CacheUnavailableError(AccessLayerException):
    """Transport or serialization failure talking to the cache.

    ``deleted`` holds the number of keys already removed when a multi-key
    delete fails part way through.
    """

    status_code = 503

    def __init__(
        self,
        message: str = "Cache unavailable",
        details: Optional[Dict[str, Any]] = None,
        deleted: int = 0
    ):
        super().__init__("CACHE_UNAVAILABLE", message, details)
        self.deleted = deleted


class StoreError(AccessLayerException):
    """Backing-store failure."""

    status_code = 500

    def __init__(self, message: str = "Record store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)

