"""
Exception hierarchy for the ingestion pipeline.
"""
from typing import Optional

from .models import RateLimitStatus


class IngestError(Exception):
    """Base class for all pipeline errors."""


class InvalidKeyword(IngestError):
    pass


class QuotaDenied(IngestError):
    """The user's plan does not allow another scrape right now."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RateLimitExceeded(IngestError):
    """The daily call budget of an external service is exhausted. Not retryable."""

    def __init__(self, service: str, status: Optional[RateLimitStatus] = None):
        msg = f"Daily rate limit reached for {service}"
        if status is not None:
            msg += f" ({status.current}/{status.limit})"
        super().__init__(msg)
        self.service = service
        self.status = status


class UpstreamHTTPError(IngestError):
    """Non-2xx response from an external HTTP service."""

    def __init__(self, status: int, message: str = "", details: str = ""):
        super().__init__(message or f"Upstream error: HTTP {status}")
        self.status = status
        self.details = details


class ExtractionError(IngestError):
    """An extraction strategy reported failure."""


class JobStateError(IngestError):
    """Illegal job state transition."""
