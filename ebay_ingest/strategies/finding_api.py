"""
eBay Finding API client.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ..errors import UpstreamHTTPError
from ..models import ExtractionResult, RawListing
from ..rate_limiter import DEFAULT_SERVICE, RateLimiter
from ..retry import RetryPolicy, with_retry
from .base import ExtractionStrategy, ExtractOptions

logger = logging.getLogger(__name__)

FINDING_URLS = {
    "PRODUCTION": "https://svcs.ebay.com/services/search/FindingService/v1",
    "SANDBOX": "https://svcs.sandbox.ebay.com/services/search/FindingService/v1",
}

# mode -> (operation name, response root key)
OPERATIONS = {
    "sold": ("findCompletedItems", "findCompletedItemsResponse"),
    "active": ("findItemsByKeywords", "findItemsByKeywordsResponse"),
}

CACHE_TTL_SECONDS = 15 * 60


def _first(node: Any, *path: str) -> Any:
    """
    Walk the Finding API's list-wrapped JSON.

    Every object field is a one-element list, so `_first(item, "sellingStatus",
    "currentPrice")` is item["sellingStatus"][0]["currentPrice"][0].
    """
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
        if isinstance(node, list):
            node = node[0] if node else None
        if node is None:
            return None
    return node


def parse_finding_response(data: Dict, root_key: str, keyword: str,
                           mode: str) -> Tuple[bool, Optional[str], List[RawListing]]:
    """
    Translate a Finding API payload into RawListings.

    Returns (ok, error_message, listings); ok is False when eBay's `ack`
    is anything but Success.
    """
    response = _first(data, root_key)
    if not response or _first(response, "ack") != "Success":
        message = _first(response or {}, "errorMessage", "error", "message") or "Unknown eBay API error"
        return False, message, []

    items = (_first(response, "searchResult") or {}).get("item") or []
    listings = []
    for item in items:
        title = _first(item, "title")
        item_url = _first(item, "viewItemURL")
        if not title or not item_url:
            continue

        price = _first(item, "sellingStatus", "currentPrice") or {}
        shipping = _first(item, "shippingInfo") or {}
        listing_type = _first(item, "listingInfo", "listingType") or ""
        bid_count = _first(item, "sellingStatus", "bidCount") or _first(item, "listingInfo", "bidCount") or "0"

        if _first(shipping, "shippingType") == "Free":
            shipping_text = "Free shipping"
        else:
            shipping_text = str(_first(shipping, "shippingServiceCost", "__value__") or "")

        listings.append(RawListing(
            search_keyword=keyword,
            item_url=item_url,
            title=title,
            price_text=str(price.get("__value__", "")),
            shipping_text=shipping_text,
            bid_text=f"{bid_count} bids" if listing_type.startswith("Auction") else listing_type,
            sold_date_text=(_first(item, "listingInfo", "endTime") or "") if mode == "sold" else "",
            image_url=_first(item, "galleryURL"),
            currency=price.get("@currencyId") or "USD",
            source="api",
        ))
    return True, None, listings


class FindingApiStrategy(ExtractionStrategy):
    """
    Official API strategy.

    Each outbound call is checked against the rate limiter, counted, and
    wrapped in the retry executor. Identical queries within 15 minutes are
    served from an in-memory cache.
    """

    name = "api"
    source = "api"

    def __init__(
        self,
        app_id: str,
        limiter: RateLimiter,
        environment: str = "SANDBOX",
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        service_name: str = DEFAULT_SERVICE,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not app_id:
            raise ValueError("EBAY_APP_ID is required for the Finding API strategy")
        self.app_id = app_id
        self.limiter = limiter
        self.base_url = FINDING_URLS.get(environment.upper(), FINDING_URLS["SANDBOX"])
        self.rate_limited_service = service_name
        self.retry_policy = retry_policy
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: Dict[Tuple[str, str, int], Tuple[float, List[RawListing]]] = {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    def _get_cached(self, key) -> Optional[List[RawListing]]:
        entry = self._cache.get(key)
        if entry and self._clock() - entry[0] < self.cache_ttl:
            return entry[1]
        if entry:
            del self._cache[key]
        return None

    def _store(self, key, listings: List[RawListing]) -> None:
        now = self._clock()
        expired = [k for k, (ts, _) in self._cache.items() if now - ts >= self.cache_ttl]
        for k in expired:
            del self._cache[k]
        self._cache[key] = (now, listings)

    def _params(self, operation: str, keyword: str, mode: str, limit: int) -> Dict[str, str]:
        params = {
            "OPERATION-NAME": operation,
            "SERVICE-VERSION": "1.0.0",
            "SECURITY-APPNAME": self.app_id,
            "RESPONSE-DATA-FORMAT": "JSON",
            "REST-PAYLOAD": "",
            "keywords": keyword,
            "paginationInput.entriesPerPage": str(limit),
        }
        if mode == "sold":
            params.update({
                "sortOrder": "EndTimeSoonest",
                "itemFilter(0).name": "SoldItemsOnly",
                "itemFilter(0).value": "true",
            })
        else:
            params["sortOrder"] = "BestMatch"
        return params

    async def _call(self, operation: str, params: Dict[str, str]) -> Dict:
        """One gated request; every attempt, retries included, needs budget."""
        self.limiter.ensure_available(self.rate_limited_service)
        self.limiter.increment_usage(self.rate_limited_service)
        response = await self._client.get(
            self.base_url,
            params=params,
            headers={
                "X-EBAY-SOA-SECURITY-APPNAME": self.app_id,
                "X-EBAY-SOA-OPERATION-NAME": operation,
                "X-EBAY-SOA-RESPONSE-DATA-FORMAT": "JSON",
            },
        )
        if response.status_code >= 400:
            raise UpstreamHTTPError(
                response.status_code,
                f"eBay API error: {response.status_code}",
                details=response.text[:500],
            )
        return response.json()

    async def extract(self, keyword: str, options: ExtractOptions) -> ExtractionResult:
        mode = options.mode if options.mode in OPERATIONS else "active"
        cache_key = (mode, keyword, options.limit)
        cached = self._get_cached(cache_key)
        if cached is not None:
            logger.info(f"[eBay API] Returning cached results for {mode.upper()}: {keyword}")
            return ExtractionResult(listings=list(cached), success=True, pages_scraped=0, source=self.source)

        self.limiter.ensure_available(self.rate_limited_service)

        operation, root_key = OPERATIONS[mode]
        params = self._params(operation, keyword, mode, options.limit)
        logger.info(f"[eBay API] {operation} for {keyword!r} (limit {options.limit})")
        data = await with_retry(lambda: self._call(operation, params), self.retry_policy)

        ok, error_message, listings = parse_finding_response(data, root_key, keyword, mode)
        if not ok:
            logger.error(f"[eBay API] {operation} failed: {error_message}")
            return ExtractionResult(success=False, error_message=error_message, source=self.source)

        self._store(cache_key, listings)
        logger.info(f"[eBay API] Found {len(listings)} {mode} listings for {keyword!r}")
        return ExtractionResult(listings=listings, success=True, pages_scraped=1, source=self.source)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
