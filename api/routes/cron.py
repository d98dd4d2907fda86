"""
Periodic queue drain trigger.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from ebay_ingest.container import Components

from ..deps import get_components, get_settings
from ..models import DrainItem, DrainResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    settings=Depends(get_settings),
) -> None:
    if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route("/scrape-queue", methods=["GET", "POST"], response_model=DrainResponse,
                  dependencies=[Depends(verify_cron_secret)])
async def drain_scrape_queue(
    components: Components = Depends(get_components),
    settings=Depends(get_settings),
):
    """Run the oldest pending jobs one after another."""
    report = await components.pipeline.drain(
        batch_size=settings.DRAIN_BATCH_SIZE,
        pause=settings.DRAIN_PAUSE_SECONDS,
    )
    if not report.outcomes:
        return DrainResponse(message="No pending jobs", results=[])

    results = [
        DrainItem(job_id=o.job_id, keyword=o.keyword, success=o.success, count=o.count, error=o.error)
        for o in report.outcomes
    ]
    return DrainResponse(message=f"Processed {report.processed} jobs ({report.failed} failed)", results=results)
