"""
Playwright-based scraping of eBay search result pages.
"""
import asyncio
import logging
import random
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from ..errors import UpstreamHTTPError
from ..models import ExtractionResult, RawListing
from ..retry import RetryPolicy, is_transient_error, with_retry
from ..utils import clean_text, extract_sold_caption_date, parse_price
from .base import ExtractionStrategy, ExtractOptions

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.ebay.com/sch/i.html"
RESULTS_SELECTOR = ".s-item, .s-card"
NO_RESULTS_SELECTOR = ".srp-save-null-search__heading"
NAVIGATION_TIMEOUT_MS = 35_000
RESULTS_WAIT_MS = 10_000

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1280, "height": 800}
EXTRA_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
}
LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled", "--no-sandbox", "--disable-dev-shm-usage"]

NAVIGATION_RETRY = RetryPolicy(max_retries=2, initial_delay=2.0, max_delay=10.0,
                               should_retry=is_transient_error)

FALLBACK_TIMEOUT_SECONDS = 30.0

_BIDS_RE = re.compile(r"\d+\s+bids?", re.I)
_PLACEHOLDER_TITLES = ("shop on ebay",)


def build_search_url(keyword: str, page: int, mode: str = "sold") -> str:
    params = {
        "_nkw": keyword,
        "_sacat": "0",
        "_pgn": str(page),
        "_ipg": "240",
    }
    if mode == "sold":
        params.update({"LH_Sold": "1", "LH_Complete": "1", "_sop": "13"})
    return f"{SEARCH_URL}?{urlencode(params)}"


def _text(card, selectors: Sequence[str]) -> str:
    parts = []
    for sel in selectors:
        for el in card.select(sel):
            t = clean_text(el.get_text(" ", strip=True))
            if t:
                parts.append(t)
    return " ".join(parts)


@dataclass(frozen=True)
class CardShape:
    """
    Selector set for one generation of eBay's result-card markup.

    `extract` returns None when the card does not look like this shape, so
    shapes can be tried in order until one matches.
    """

    name: str
    title: str
    price: str
    link: str
    shipping: Tuple[str, ...] = ()
    bids: Tuple[str, ...] = ()
    caption: Tuple[str, ...] = ()
    image: str = "img"

    def extract(self, card, keyword: str, mode: str = "sold") -> Optional[RawListing]:
        title_el = card.select_one(self.title)
        link_el = card.select_one(self.link)
        if title_el is None or link_el is None:
            return None

        title = clean_text(re.sub(r"(?i)^new listing\s*", "", title_el.get_text(" ", strip=True)))
        if not title or title.lower() in _PLACEHOLDER_TITLES:
            return None

        href = (link_el.get("href") or "").split("?")[0]
        if not href:
            return None

        price_text = _text(card, (self.price,))
        if parse_price(price_text) is None:
            return None

        bids_match = _BIDS_RE.search(_text(card, self.bids))
        img = card.select_one(self.image)
        image_url = None
        if img is not None:
            image_url = img.get("src") or img.get("data-src")
            if image_url and not image_url.startswith("http"):
                image_url = img.get("data-src")

        sold_date_text = ""
        if mode == "sold":
            sold_date_text = extract_sold_caption_date(_text(card, self.caption))

        return RawListing(
            search_keyword=keyword,
            item_url=href,
            title=title,
            price_text=price_text,
            shipping_text=_text(card, self.shipping),
            bid_text=bids_match.group(0) if bids_match else "",
            sold_date_text=sold_date_text,
            image_url=image_url,
            currency=None,
            source="dom",
        )


CLASSIC_SHAPE = CardShape(
    name="s-item",
    title=".s-item__title",
    price=".s-item__price",
    link="a.s-item__link",
    shipping=(".s-item__shipping", ".s-item__logisticsCost"),
    bids=(".s-item__bids", ".s-item__bidCount"),
    caption=(".s-item__caption--signal", ".s-item__caption", ".s-item__title--tag"),
)

CARD_SHAPE = CardShape(
    name="s-card",
    title=".s-card__title",
    price=".s-card__price",
    link="a.s-card__link, .s-card__link",
    shipping=(".s-card__shipping",),
    bids=(".s-card__bids", ".s-card__info", ".s-card__details"),
    caption=(".s-card__caption",),
)

# Tried in order per card. A new markup generation is added by appending a shape.
DEFAULT_SHAPES: Tuple[CardShape, ...] = (CLASSIC_SHAPE, CARD_SHAPE)


@dataclass
class PageParse:
    listings: List[RawListing] = field(default_factory=list)
    cards_seen: int = 0
    no_results: bool = False


def parse_results_page(html: str, keyword: str, mode: str = "sold",
                       shapes: Sequence[CardShape] = DEFAULT_SHAPES) -> PageParse:
    """Extract listings from one rendered search results page."""
    soup = BeautifulSoup(html, "html.parser")
    result = PageParse()

    if soup.select_one(NO_RESULTS_SELECTOR) is not None:
        result.no_results = True
        return result

    for card in soup.select(RESULTS_SELECTOR):
        result.cards_seen += 1
        for shape in shapes:
            listing = shape.extract(card, keyword, mode)
            if listing is not None:
                result.listings.append(listing)
                break
    return result


async def fetch_page_html(url: str) -> str:
    """Plain HTTP fetch of a results page with the browser's user agent and headers."""
    headers = {"User-Agent": USER_AGENT, **EXTRA_HEADERS}
    async with httpx.AsyncClient(headers=headers, follow_redirects=True,
                                 timeout=httpx.Timeout(FALLBACK_TIMEOUT_SECONDS)) as client:
        response = await client.get(url)
    if response.status_code >= 400:
        raise UpstreamHTTPError(response.status_code, f"eBay returned HTTP {response.status_code}")
    return response.text


@asynccontextmanager
async def browser_session(headless: bool = True) -> AsyncIterator:
    """
    Yield a ready page with a realistic browser fingerprint.

    Page, context and browser are closed on every exit path. A failure while
    closing is logged and never replaces the original outcome.
    """
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=LAUNCH_ARGS)
        context = None
        try:
            context = await browser.new_context(
                user_agent=USER_AGENT,
                viewport=VIEWPORT,
                locale="en-US",
                timezone_id="America/New_York",
                extra_http_headers=EXTRA_HEADERS,
            )
            context.set_default_timeout(30_000)
            context.set_default_navigation_timeout(NAVIGATION_TIMEOUT_MS)
            page = await context.new_page()
            yield page
        finally:
            for resource, label in ((context, "context"), (browser, "browser")):
                if resource is None:
                    continue
                try:
                    await resource.close()
                except Exception as e:
                    logger.error(f"Failed to close browser {label}: {e}")


class DomScraperStrategy(ExtractionStrategy):
    """
    HTML scraping of search result pages through a headless browser.

    When navigation still fails after its retries, the same URL is fetched
    over plain HTTP and parsed with the same card shapes. If that fails too,
    the navigation error is raised.
    """

    name = "dom"
    source = "dom"

    def __init__(
        self,
        headless: bool = True,
        shapes: Sequence[CardShape] = DEFAULT_SHAPES,
        session_factory: Callable = browser_session,
        navigation_retry: RetryPolicy = NAVIGATION_RETRY,
        sleep: Callable = asyncio.sleep,
        fetch_html: Callable[[str], Awaitable[str]] = fetch_page_html,
    ):
        self.headless = headless
        self.fetch_html = fetch_html
        self.shapes = tuple(shapes)
        self.session_factory = session_factory
        self.navigation_retry = navigation_retry
        self._sleep = sleep

    async def _open(self, page, url: str) -> None:
        response = await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        if response is not None and response.status >= 400:
            raise UpstreamHTTPError(response.status, f"eBay returned HTTP {response.status}")

    async def _fetch_fallback(self, url: str, nav_error: Exception) -> str:
        try:
            return await self.fetch_html(url)
        except (httpx.HTTPError, UpstreamHTTPError) as e:
            logger.error(f">>> HTTP fallback failed for {url}: {e}")
            raise nav_error from e

    async def extract(self, keyword: str, options: ExtractOptions) -> ExtractionResult:
        listings: List[RawListing] = []
        pages_scraped = 0

        async with self.session_factory(headless=self.headless) as page:
            for page_num in range(1, options.max_pages + 1):
                url = build_search_url(keyword, page_num, options.mode)
                logger.info(f">>> Opening results page {page_num}: {url}")
                try:
                    await with_retry(lambda: self._open(page, url), self.navigation_retry, sleep=self._sleep)
                except (PlaywrightError, UpstreamHTTPError) as nav_error:
                    logger.warning(f">>> Browser navigation failed: {nav_error}. Fetching page {page_num} over HTTP")
                    html = await self._fetch_fallback(url, nav_error)
                else:
                    try:
                        await page.wait_for_selector(f"{RESULTS_SELECTOR}, {NO_RESULTS_SELECTOR}",
                                                     timeout=RESULTS_WAIT_MS)
                    except PlaywrightTimeout:
                        logger.info(f">>> Timeout waiting for results on page {page_num}; parsing what loaded")
                    html = await page.content()

                parsed = parse_results_page(html, keyword, options.mode, self.shapes)
                pages_scraped += 1

                if parsed.no_results:
                    logger.info(f">>> No results for {keyword!r}")
                    break
                if parsed.cards_seen and not parsed.listings:
                    logger.warning(
                        f">>> Page {page_num}: {parsed.cards_seen} cards but no known markup shape matched"
                    )
                logger.info(f">>> Collected {len(parsed.listings)} items from page {page_num}")
                listings.extend(parsed.listings)

                if not parsed.cards_seen or len(listings) >= options.limit:
                    break
                if page_num < options.max_pages:
                    await self._sleep(options.page_delay + random.uniform(0, 2.0))

        return ExtractionResult(
            listings=listings[:options.limit],
            success=True,
            pages_scraped=pages_scraped,
            source=self.source,
        )
