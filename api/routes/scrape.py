"""
API route handlers for scrape job submission, status and results.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ebay_ingest.container import Components
from ebay_ingest.database import get_clean_listings_for_job
from ebay_ingest.errors import InvalidKeyword, QuotaDenied
from ebay_ingest.models import JobStatus, ScrapeJob

from ..deps import get_components, require_user
from ..models import JobCreated, JobOut, JobResults, ListingOut, ScrapeRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/scrape", tags=["scrape"])


def _load_job(components: Components, user_id: str, job_id: Optional[int]) -> ScrapeJob:
    if job_id is None:
        job = components.jobs.latest_for_user(user_id)
    else:
        job = components.jobs.get(job_id)
        if job is not None and job.user_id != user_id:
            job = None
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/start", response_model=JobCreated, status_code=202)
async def start_scrape(
    body: ScrapeRequest,
    user_id: str = Depends(require_user),
    components: Components = Depends(get_components),
):
    """Queue a scrape job and start it in the background."""
    try:
        job = components.pipeline.submit(user_id, body.keyword or "", body.mode)
    except InvalidKeyword as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuotaDenied as e:
        raise HTTPException(status_code=403, detail=e.reason)

    components.runner.submit(job)
    logger.info(f"Scrape job {job.id} started for user {user_id}: {job.keyword!r}")
    return JobCreated(job_id=job.id, keyword=job.keyword, status=job.status.value, created_at=job.created_at)


@router.get("/status", response_model=JobOut)
async def scrape_status(
    job_id: Optional[int] = Query(None),
    user_id: str = Depends(require_user),
    components: Components = Depends(get_components),
):
    """Job state; the user's most recent job when no id is given."""
    job = _load_job(components, user_id, job_id)
    return JobOut(**job.to_dict())


@router.get("/results", response_model=JobResults)
async def scrape_results(
    job_id: Optional[int] = Query(None),
    user_id: str = Depends(require_user),
    components: Components = Depends(get_components),
):
    job = _load_job(components, user_id, job_id)
    items = []
    if job.status == JobStatus.COMPLETED:
        items = [
            ListingOut(
                item_url=x.item_url,
                title=x.title,
                search_keyword=x.search_keyword,
                currency=x.currency,
                sold_price=x.sold_price,
                shipping_price=x.shipping_price,
                is_auction=x.is_auction,
                bid_count=x.bid_count,
                sold_date=x.sold_date,
                dedupe_hash=x.dedupe_hash,
                image_url=x.image_url,
                source=x.source,
            )
            for x in get_clean_listings_for_job(components.db, job.id)
        ]
    return JobResults(job=JobOut(**job.to_dict()), total=len(items), items=items)
