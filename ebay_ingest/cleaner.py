"""
Normalization of raw scraped listings into typed, deduplicated records.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .models import CleanListing, RawListing
from .utils import (
    clean_text,
    dedupe_hash,
    detect_auction,
    detect_currency,
    parse_bid_count,
    parse_price,
    parse_shipping,
    parse_sold_date,
)

logger = logging.getLogger(__name__)


@dataclass
class CleanReport:
    listings: List[CleanListing] = field(default_factory=list)
    duplicates_dropped: int = 0
    rejected: int = 0


class Cleaner:
    """Stateless; safe to share between concurrent jobs."""

    def clean_one(self, raw: RawListing, user_id: str, job_id: Optional[int] = None) -> CleanListing:
        sold_price = parse_price(raw.price_text)
        if sold_price is not None and sold_price < 0:
            raise ValueError(f"negative price {sold_price}")
        sold_date = parse_sold_date(raw.sold_date_text)
        title = clean_text(raw.title)

        return CleanListing(
            user_id=user_id,
            search_keyword=raw.search_keyword,
            item_url=raw.item_url,
            title=title,
            currency=raw.currency or detect_currency(raw.price_text),
            sold_price=sold_price,
            shipping_price=parse_shipping(raw.shipping_text),
            is_auction=detect_auction(raw.bid_text),
            bid_count=parse_bid_count(raw.bid_text),
            sold_date=sold_date,
            dedupe_hash=dedupe_hash(title, sold_price, sold_date),
            image_url=raw.image_url,
            source=raw.source,
            job_id=job_id,
        )

    def clean(self, raw_listings: Iterable[RawListing], user_id: str,
              job_id: Optional[int] = None) -> CleanReport:
        """
        Clean a batch and drop duplicate item URLs (first occurrence wins).

        A listing that fails to parse is logged and skipped; the rest of the
        batch is still returned.
        """
        report = CleanReport()
        seen_urls = set()

        for raw in raw_listings:
            try:
                cleaned = self.clean_one(raw, user_id, job_id)
            except Exception as e:
                report.rejected += 1
                logger.warning(f"Dropping listing {getattr(raw, 'item_url', '?')}: {e}")
                continue

            if cleaned.item_url in seen_urls:
                report.duplicates_dropped += 1
                continue
            seen_urls.add(cleaned.item_url)
            report.listings.append(cleaned)

        logger.info(
            f"Cleaner: {len(report.listings)} unique listings "
            f"({report.duplicates_dropped} duplicates, {report.rejected} rejected)"
        )
        return report

    def clean_listings(self, raw_listings: Iterable[RawListing], user_id: str) -> List[CleanListing]:
        return self.clean(raw_listings, user_id).listings
