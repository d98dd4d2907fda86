"""
CSV export of a user's clean listings.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ebay_ingest.container import Components
from ebay_ingest.export import export_clean_listings

from ..deps import get_components, require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/export", tags=["export"])


@router.get("/csv")
async def export_listings_csv(
    keyword: Optional[str] = None,
    user_id: str = Depends(require_user),
    components: Components = Depends(get_components),
):
    """Export clean listings as CSV."""
    try:
        df = export_clean_listings(components.db, user_id, keyword)
        csv_content = df.to_csv(index=False).encode("utf-8")
    except Exception as e:
        logger.error(f"Error exporting CSV: {e}")
        raise HTTPException(status_code=500, detail="Error generating CSV export")

    return StreamingResponse(
        iter([csv_content]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="ebay_listings.csv"'},
    )
