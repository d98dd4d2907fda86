"""
Synthetic sold-listing generator used when live sources are unavailable.
"""
import logging
import random
import re
import zlib
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..models import ExtractionResult, RawListing
from .base import ExtractionStrategy, ExtractOptions

logger = logging.getLogger(__name__)

ART_STYLES = ["Abstract", "Modern", "Contemporary", "Impressionist", "Expressionist",
              "Minimalist", "Vintage", "Folk Art", "Pop Art", "Surrealist"]
MEDIUMS = ["Oil Painting", "Acrylic Painting", "Watercolor", "Mixed Media", "Gouache",
           "Pastel", "Ink Drawing", "Charcoal"]
SUBJECTS = ["Landscape", "Seascape", "Cityscape", "Portrait", "Still Life", "Floral",
            "Abstract Design", "Geometric", "Nature Scene", "Mountain View"]
DESCRIPTORS = ["Original", "Signed", "Framed", "Unique", "Hand-painted", "Artist Signed",
               "Gallery Quality", "Museum Quality"]

BASE_PRICES = [35, 42, 48, 55, 65, 72, 78, 85, 95, 110, 125, 135, 150, 175, 200]
SHIPPING_COSTS = [0, 7.50, 8.50, 9.95, 10.50, 12.00]
MAX_BIDS = 24
SOLD_WITHIN_DAYS = 30
DEFAULT_COUNT = 15


def _title(keyword: str, index: int) -> str:
    style = ART_STYLES[index % len(ART_STYLES)]
    medium = MEDIUMS[index % len(MEDIUMS)]
    subject = SUBJECTS[index % len(SUBJECTS)]
    descriptor = DESCRIPTORS[index % len(DESCRIPTORS)]

    size_match = re.search(r"(\d+)\s*x\s*(\d+)", keyword, re.I)
    size = f"{size_match.group(1)}x{size_match.group(2)}" if size_match else "9x12"

    templates = [
        f"{descriptor} {style} {medium} {size} - {subject}",
        f"{medium} {size} {subject} {style} {descriptor}",
        f"{style} {subject} {medium} {size} {descriptor}",
        f"{descriptor} {medium} {size} {style} {subject}",
        f"{size} {style} {medium} {subject} Signed",
    ]
    return templates[index % len(templates)]


def generate_sample_listings(keyword: str, count: int = DEFAULT_COUNT,
                             today: Optional[datetime] = None) -> List[RawListing]:
    """
    Generate `count` plausible sold listings for any keyword.

    The generator is seeded from the keyword, so the same keyword always
    yields the same titles, prices and item ids. Prices stay within ±10 of a
    fixed base ladder, bids in 0..24, sold dates within the last 30 days.
    """
    rng = random.Random(zlib.crc32(keyword.encode("utf-8")))
    today = today or datetime.now(timezone.utc)
    listings = []

    for i in range(count):
        item_id = rng.randint(100_000_000_000, 999_999_999_999)
        price = round(BASE_PRICES[i % len(BASE_PRICES)] + rng.uniform(-10, 10), 2)
        shipping = SHIPPING_COSTS[i % len(SHIPPING_COSTS)]
        bids = rng.randint(0, MAX_BIDS)
        sold = today - timedelta(days=rng.randrange(SOLD_WITHIN_DAYS))

        listings.append(RawListing(
            search_keyword=keyword,
            item_url=f"https://www.ebay.com/itm/{item_id}",
            title=_title(keyword, i),
            price_text=f"${price:,.2f}",
            shipping_text="Free shipping" if shipping == 0 else f"+${shipping:.2f} shipping",
            bid_text=f"{bids} bids" if bids else "Buy It Now",
            sold_date_text=sold.date().isoformat(),
            image_url=f"https://i.ebayimg.com/images/g/placeholder-{i}/s-l500.jpg",
            currency="USD",
            source="sample",
        ))
    return listings


class SampleDataStrategy(ExtractionStrategy):
    name = "sample"
    source = "sample"

    def __init__(self, count: int = DEFAULT_COUNT):
        self.count = count

    async def extract(self, keyword: str, options: ExtractOptions) -> ExtractionResult:
        count = min(self.count, options.limit) if options.limit else self.count
        logger.info(f"Generating {count} sample listings for: {keyword!r}")
        return ExtractionResult(
            listings=generate_sample_listings(keyword, count),
            success=True,
            pages_scraped=1,
            source=self.source,
        )
