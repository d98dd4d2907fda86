"""
Data models for the eBay listing ingestion pipeline.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class JobStatus(str, Enum):
    """Lifecycle states of a scrape job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


LISTING_MODES = ("active", "sold")
DEFAULT_MODE = "active"


@dataclass(frozen=True)
class RawListing:
    """One scraped item before normalization. All price/date fields are unparsed text."""

    search_keyword: str
    item_url: str
    title: str
    price_text: str = ""
    shipping_text: str = ""
    bid_text: str = ""
    sold_date_text: str = ""
    image_url: Optional[str] = None
    currency: Optional[str] = None

    # Origin tag: "api", "dom" or "sample"
    source: str = ""


@dataclass(frozen=True)
class CleanListing:
    """Normalized, typed listing ready for persistence."""

    user_id: str
    search_keyword: str
    item_url: str
    title: str
    sold_price: Optional[float]
    is_auction: bool
    bid_count: int
    sold_date: Optional[str]
    dedupe_hash: str
    currency: str = "USD"
    shipping_price: float = 0.0
    image_url: Optional[str] = None
    source: str = ""
    job_id: Optional[int] = None


@dataclass
class ScrapeJob:
    """Persisted unit of orchestration for one ingestion request."""

    id: int
    user_id: str
    keyword: str
    status: JobStatus
    mode: str = DEFAULT_MODE
    pages_scraped: int = 0
    items_found: int = 0
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "ScrapeJob":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            keyword=row["keyword"],
            status=JobStatus(row["status"]),
            mode=row["mode"],
            pages_scraped=row["pages_scraped"] or 0,
            items_found=row["items_found"] or 0,
            error_message=row["error_message"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "keyword": self.keyword,
            "status": self.status.value,
            "mode": self.mode,
            "pages_scraped": self.pages_scraped,
            "items_found": self.items_found,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass(frozen=True)
class RateLimitStatus:
    current: int
    limit: int
    remaining: int
    is_blocked: bool


@dataclass
class ExtractionResult:
    """Uniform return value of every extraction strategy."""

    listings: List[RawListing] = field(default_factory=list)
    success: bool = True
    error_message: Optional[str] = None
    pages_scraped: int = 0
    source: str = ""


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    tier: str
    used: int
    limit: int
    reason: Optional[str] = None


@dataclass
class PipelineStats:
    keyword: str
    mode: str
    job_id: Optional[int] = None
    source: str = ""
    raw_count: int = 0
    clean_count: int = 0
    duplicates_dropped: int = 0
    rejected_count: int = 0
    pages_scraped: int = 0


@dataclass
class PipelineResult:
    success: bool
    stats: PipelineStats
    error: Optional[str] = None
