"""
Tests for field parsing helpers and the cleaner.
"""
from datetime import date

import pytest

from ebay_ingest.cleaner import Cleaner
from ebay_ingest.models import RawListing
from ebay_ingest.utils import (
    clean_text,
    dedupe_hash,
    detect_auction,
    detect_currency,
    extract_sold_caption_date,
    normalize_keyword,
    parse_bid_count,
    parse_price,
    parse_shipping,
    parse_sold_date,
)


def _raw(url, title="Abstract Oil Painting", price="$45.00", shipping="", bids="", sold=""):
    return RawListing(
        search_keyword="abstract painting",
        item_url=url,
        title=title,
        price_text=price,
        shipping_text=shipping,
        bid_text=bids,
        sold_date_text=sold,
    )


def test_price_parsing():
    """Test price parsing functionality."""
    assert parse_price("$1,234.56") == 1234.56
    assert parse_price("$45") == 45.0
    assert parse_price("US $12.50") == 12.5
    assert parse_price("") is None
    assert parse_price("N/A") is None
    assert parse_price("free") is None


def test_shipping_parsing():
    assert parse_shipping("Free shipping") == 0.0
    assert parse_shipping("+$8.50 shipping") == 8.5
    assert parse_shipping("+ $8.50 shipping") == 8.5
    assert parse_shipping("") == 0.0
    assert parse_shipping("Shipping not specified") == 0.0


def test_auction_detection():
    assert detect_auction("3 bids")
    assert detect_auction("1 bid")
    assert not detect_auction("Buy It Now")
    assert not detect_auction("")
    assert parse_bid_count("12 bids") == 12
    assert parse_bid_count("Buy It Now") == 0


def test_text_cleaning():
    """Test text cleaning functionality."""
    assert clean_text("  Hello   World  \n") == "Hello World"
    assert clean_text(None) == ""
    assert normalize_keyword("  Abstract   PAINTING ") == "abstract painting"


def test_currency_detection():
    assert detect_currency("$10") == "USD"
    assert detect_currency("£10") == "GBP"
    assert detect_currency("EUR 10,00") == "EUR"
    assert detect_currency("10") == "USD"


def test_sold_date_parsing():
    assert parse_sold_date("Sold Mar 5, 2024") == "2024-03-05"
    assert parse_sold_date("2024-03-05T18:22:01.000Z") == "2024-03-05"
    assert parse_sold_date("") is None
    assert parse_sold_date("not a date at all") is None


def test_sold_caption_falls_back_to_given_day():
    assert extract_sold_caption_date("Sold  Jan 7, 2024") == "2024-01-07"
    assert extract_sold_caption_date("Ended recently", fallback=date(2024, 2, 1)) == "2024-02-01"


def test_dedupe_hash_is_stable():
    h = dedupe_hash("Painting", 45.0, "2024-03-05")
    assert h == dedupe_hash("Painting", 45.0, "2024-03-05")
    assert h != dedupe_hash("Painting", 46.0, "2024-03-05")
    assert h.isalnum()


def test_cleaner_keeps_first_occurrence_of_url():
    raws = [
        _raw("https://www.ebay.com/itm/1", title="First"),
        _raw("https://www.ebay.com/itm/2", title="Other"),
        _raw("https://www.ebay.com/itm/1", title="Second"),
    ]
    report = Cleaner().clean(raws, "user-1", job_id=7)

    assert [x.item_url for x in report.listings] == [
        "https://www.ebay.com/itm/1",
        "https://www.ebay.com/itm/2",
    ]
    assert report.listings[0].title == "First"
    assert report.duplicates_dropped == 1
    assert all(x.job_id == 7 and x.user_id == "user-1" for x in report.listings)


def test_cleaner_parses_fields():
    listing = Cleaner().clean_one(
        _raw("https://www.ebay.com/itm/9", price="$1,234.56", shipping="Free shipping", bids="3 bids",
             sold="Sold Mar 5, 2024"),
        "user-1",
    )
    assert listing.sold_price == 1234.56
    assert listing.shipping_price == 0.0
    assert listing.is_auction is True
    assert listing.bid_count == 3
    assert listing.sold_date == "2024-03-05"
    assert listing.currency == "USD"

    buy_now = Cleaner().clean_one(_raw("https://www.ebay.com/itm/10", bids="Buy It Now"), "user-1")
    assert buy_now.is_auction is False
    assert buy_now.bid_count == 0


def test_cleaner_drops_bad_item_and_keeps_the_rest():
    raws = [
        _raw("https://www.ebay.com/itm/1"),
        RawListing(search_keyword="k", item_url="https://www.ebay.com/itm/2", title="Broken", price_text=12),
        _raw("https://www.ebay.com/itm/3"),
    ]
    report = Cleaner().clean(raws, "user-1")

    assert [x.item_url for x in report.listings] == [
        "https://www.ebay.com/itm/1",
        "https://www.ebay.com/itm/3",
    ]
    assert report.rejected == 1


@pytest.mark.parametrize("text", ["", "   "])
def test_blank_title_is_kept_as_empty(text):
    listing = Cleaner().clean_one(_raw("https://www.ebay.com/itm/5", title=text), "u")
    assert listing.title == ""


def test_clean_listings_returns_only_listings():
    listings = Cleaner().clean_listings([_raw("https://www.ebay.com/itm/1"), _raw("https://www.ebay.com/itm/1")], "u")
    assert len(listings) == 1
