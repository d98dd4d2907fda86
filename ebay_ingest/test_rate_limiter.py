"""
Tests for the shared daily rate limiter and per-user quota.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from ebay_ingest.database import Database
from ebay_ingest.errors import RateLimitExceeded
from ebay_ingest.quota import QuotaChecker, TIER_DAILY_SCRAPES
from ebay_ingest.rate_limiter import RateLimiter


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "ingest.db"))
    database.init()
    return database


def test_unused_service_reports_zero(db):
    status = RateLimiter(db, default_limit=100).check_limit("svc")
    assert status.current == 0
    assert status.limit == 100
    assert status.remaining == 100
    assert not status.is_blocked


def test_concurrent_increments_are_not_lost(db):
    limiter = RateLimiter(db, default_limit=1000)
    n = 40
    with ThreadPoolExecutor(max_workers=8) as pool:
        counts = list(pool.map(lambda _: limiter.increment_usage("svc"), range(n)))

    assert limiter.check_limit("svc").current == n
    assert sorted(counts) == list(range(1, n + 1))


def test_blocked_at_limit(db):
    limiter = RateLimiter(db)
    limiter.set_daily_limit("svc", 5)
    for _ in range(5):
        limiter.increment_usage("svc")

    status = limiter.check_limit("svc")
    assert status.current == 5
    assert status.remaining == 0
    assert status.is_blocked
    with pytest.raises(RateLimitExceeded):
        limiter.ensure_available("svc")


def test_limit_change_applies_to_today(db):
    limiter = RateLimiter(db, default_limit=2)
    limiter.increment_usage("svc")
    limiter.increment_usage("svc")
    assert limiter.check_limit("svc").is_blocked

    limiter.set_daily_limit("svc", 10)
    status = limiter.check_limit("svc")
    assert status.limit == 10
    assert not status.is_blocked


def test_services_are_counted_separately(db):
    limiter = RateLimiter(db)
    limiter.increment_usage("a")
    assert limiter.check_limit("b").current == 0


def test_free_tier_quota(db):
    quota = QuotaChecker(db)
    for _ in range(TIER_DAILY_SCRAPES["free"]):
        assert quota.can_scrape("u1").allowed
        quota.record_scrape("u1")

    decision = quota.can_scrape("u1")
    assert not decision.allowed
    assert decision.tier == "free"
    assert "free tier" in decision.reason
    assert quota.can_scrape("u2").allowed


def test_upgraded_tier_quota(db):
    quota = QuotaChecker(db)
    quota.set_tier("u1", "artist")
    for _ in range(TIER_DAILY_SCRAPES["free"]):
        quota.record_scrape("u1")
    decision = quota.can_scrape("u1")
    assert decision.allowed
    assert decision.limit == 100
    with pytest.raises(ValueError):
        quota.set_tier("u1", "platinum")
