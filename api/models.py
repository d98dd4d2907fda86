"""
Pydantic models for API request/response serialization.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel


class ScrapeRequest(BaseModel):
    """Input model for job submission."""
    keyword: Optional[str] = None
    mode: Literal["active", "sold"] = "active"


class JobCreated(BaseModel):
    job_id: int
    keyword: str
    status: str
    created_at: Optional[str] = None


class JobOut(BaseModel):
    """Output model for scrape job state."""
    id: int
    user_id: str
    keyword: str
    status: str
    mode: str = "active"
    pages_scraped: int = 0
    items_found: int = 0
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class ListingOut(BaseModel):
    """Output model for a clean listing."""
    item_url: str
    title: str = ""
    search_keyword: str = ""
    currency: str = "USD"
    sold_price: Optional[float] = None
    shipping_price: float = 0.0
    is_auction: bool = False
    bid_count: int = 0
    sold_date: Optional[str] = None
    dedupe_hash: str = ""
    image_url: Optional[str] = None
    source: str = ""


class JobResults(BaseModel):
    job: JobOut
    total: int
    items: List[ListingOut]


class DrainItem(BaseModel):
    job_id: int
    keyword: str
    success: bool
    count: int = 0
    error: Optional[str] = None


class DrainResponse(BaseModel):
    success: bool = True
    message: str
    results: List[DrainItem]
