"""
eBay listing ingestion pipeline
"""
from .models import (
    CleanListing,
    ExtractionResult,
    JobStatus,
    PipelineResult,
    PipelineStats,
    RateLimitStatus,
    RawListing,
    ScrapeJob,
)
from .errors import (
    IngestError,
    InvalidKeyword,
    QuotaDenied,
    RateLimitExceeded,
    UpstreamHTTPError,
    ExtractionError,
)
from .cleaner import Cleaner
from .core import Pipeline
from .container import Components, build_components
from .database import Database
from .jobs import JobQueue
from .quota import QuotaChecker
from .rate_limiter import RateLimiter
from .retry import RetryPolicy, with_retry
from .tasks import BackgroundRunner
from .utils import init_logger, now_iso

__version__ = "1.0.0"

__all__ = [
    "CleanListing",
    "ExtractionResult",
    "JobStatus",
    "PipelineResult",
    "PipelineStats",
    "RateLimitStatus",
    "RawListing",
    "ScrapeJob",
    "IngestError",
    "InvalidKeyword",
    "QuotaDenied",
    "RateLimitExceeded",
    "UpstreamHTTPError",
    "ExtractionError",
    "Cleaner",
    "Pipeline",
    "Components",
    "build_components",
    "Database",
    "JobQueue",
    "QuotaChecker",
    "RateLimiter",
    "RetryPolicy",
    "with_retry",
    "BackgroundRunner",
    "init_logger",
    "now_iso",
]
