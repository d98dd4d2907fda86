"""
Utility functions for text processing, field parsing, and logging.
"""
import logging
import re
from datetime import date, datetime, timezone
from typing import Optional

from dateutil import parser as date_parser


def init_logger(
    name: str = "ebay_ingest",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_file: Optional[str] = "ebay_ingest.log"
) -> logging.Logger:
    """Initialize logger with console and optional file handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    console_level_num = getattr(logging, console_level.upper(), logging.INFO)
    ch = logging.StreamHandler()
    ch.setLevel(console_level_num)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_file:
        file_level_num = getattr(logging, file_level.upper(), logging.DEBUG)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level_num)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


def now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def today_utc() -> str:
    """Current UTC calendar date as YYYY-MM-DD."""
    return datetime.now(timezone.utc).date().isoformat()


def clean_text(s: Optional[str]) -> str:
    """Clean and normalize text by removing extra whitespace."""
    if not s:
        return ""
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def normalize_keyword(keyword: Optional[str]) -> str:
    return clean_text(keyword).lower()


_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_BID_COUNT_RE = re.compile(r"(\d+)\s*bid", re.I)
_SOLD_DATE_RE = re.compile(r"Sold\s+([A-Za-z]+\s+\d{1,2},\s+\d{4})", re.I)

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "฿": "THB"}


def first_number(text: Optional[str]) -> Optional[float]:
    """First numeric token in text, ignoring thousands separators."""
    if not text:
        return None
    m = _NUMBER_RE.search(text.replace(",", ""))
    if not m:
        return None
    return float(m.group(0))


def parse_price(price_text: Optional[str]) -> Optional[float]:
    """
    Parse a price string like "$1,234.56" into a float.

    Returns None for empty text or text without any number ("free", "N/A").
    """
    if not price_text:
        return None
    s = price_text.replace("$", "").replace("\xa0", " ")
    return first_number(s)


def parse_shipping(shipping_text: Optional[str]) -> float:
    """Shipping cost; "free" or missing text counts as zero."""
    if not shipping_text:
        return 0.0
    if "free" in shipping_text.lower():
        return 0.0
    value = first_number(shipping_text.replace("$", ""))
    return value if value is not None else 0.0


def detect_auction(bid_text: Optional[str]) -> bool:
    return bool(bid_text) and "bid" in bid_text.lower()


def parse_bid_count(bid_text: Optional[str]) -> int:
    if not bid_text:
        return 0
    m = _BID_COUNT_RE.search(bid_text)
    return int(m.group(1)) if m else 0


def detect_currency(price_text: Optional[str], default: str = "USD") -> str:
    """
    Detect currency from a symbol or ISO code in price text.

    Supports $, €, £, ฿ and their ISO codes.
    """
    if not price_text:
        return default
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in price_text:
            return code
    m = re.search(r"\b(USD|EUR|GBP|THB|CAD|AUD)\b", price_text, re.I)
    if m:
        return m.group(1).upper()
    return default


def parse_sold_date(date_text: Optional[str]) -> Optional[str]:
    """Parse free-form sold date text to an ISO calendar date, or None."""
    text = clean_text(date_text)
    if not text:
        return None
    text = re.sub(r"^sold\s+", "", text, flags=re.I)
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    return parsed.date().isoformat()


def extract_sold_caption_date(caption: Optional[str], fallback: Optional[date] = None) -> str:
    """
    Pull the date out of a "Sold <Month> <Day>, <Year>" caption.

    Falls back to `fallback` (today, UTC, by default) when the caption has no parseable date.
    """
    fallback = fallback or datetime.now(timezone.utc).date()
    m = _SOLD_DATE_RE.search(caption or "")
    if m:
        try:
            return datetime.strptime(clean_text(m.group(1)), "%b %d, %Y").date().isoformat()
        except ValueError:
            parsed = parse_sold_date(m.group(1))
            if parsed:
                return parsed
    return fallback.isoformat()


def dedupe_hash(title: str, price: Optional[float], sold_date: Optional[str]) -> str:
    """
    Best-effort dedup key for (title, price, date).

    32-bit shift-and-add string hash rendered in base 36. Collisions are possible.
    """
    price_part = "null" if price is None else _format_number(price)
    key = f"{title}-{price_part}-{sold_date if sold_date is not None else 'null'}"
    h = 0
    for ch in key:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _to_base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(digits[r])
    return "".join(reversed(out))
