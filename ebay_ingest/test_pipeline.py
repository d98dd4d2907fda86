"""
Tests for the job queue, pipeline orchestration and background runner.
"""
import asyncio
import sqlite3

import pytest

from ebay_ingest.cli import parse_args
from ebay_ingest.container import build_components
from ebay_ingest.database import get_clean_listings, get_clean_listings_for_job
from ebay_ingest.errors import InvalidKeyword, JobStateError, QuotaDenied
from ebay_ingest.export import export_clean_listings, export_jobs
from ebay_ingest.models import ExtractionResult, JobStatus, RawListing
from ebay_ingest.strategies import ExtractionStrategy, SampleDataStrategy, StrategyRegistry


class FakeStrategy(ExtractionStrategy):
    """Returns canned listings; keywords in `failing` raise instead."""

    name = "fake"
    source = "fake"

    def __init__(self, listings=(), failing=(), result=None, service=None):
        self.listings = list(listings)
        self.failing = set(failing)
        self.result = result
        self.rate_limited_service = service
        self.calls = []

    async def extract(self, keyword, options):
        self.calls.append(keyword)
        if keyword in self.failing:
            raise RuntimeError(f"browser crashed on {keyword}")
        if self.result is not None:
            return self.result
        return ExtractionResult(listings=list(self.listings), success=True, pages_scraped=1, source=self.source)


def _raw(n, keyword="oil painting"):
    return RawListing(
        search_keyword=keyword,
        item_url=f"https://www.ebay.com/itm/{n}",
        title=f"Painting {n}",
        price_text=f"${n}0.00",
        shipping_text="Free shipping",
        bid_text="2 bids",
        sold_date_text="2024-03-05",
        source="fake",
    )


class Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _components(tmp_path, strategy, fallback=None, **kw):
    registry = StrategyRegistry(default=strategy, fallback=fallback)
    return build_components(str(tmp_path / "ingest.db"), strategies=registry, **kw)


def test_zero_listings_completes_with_zero_items(tmp_path):
    c = _components(tmp_path, FakeStrategy(listings=[]))
    result = asyncio.run(c.pipeline.run("u1", "abstract painting"))

    assert result.success
    job = c.jobs.get(result.stats.job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.items_found == 0
    assert job.completed_at is not None


def test_run_persists_clean_listings(tmp_path):
    listings = [_raw(1), _raw(2), _raw(1)]
    c = _components(tmp_path, FakeStrategy(listings=listings))
    result = asyncio.run(c.pipeline.run("u1", "  Oil   Painting "))

    assert result.success
    assert result.stats.raw_count == 3
    assert result.stats.clean_count == 2
    assert result.stats.duplicates_dropped == 1

    job = c.jobs.get(result.stats.job_id)
    assert job.keyword == "oil painting"
    assert job.items_found == 2
    assert job.pages_scraped == 1
    stored = get_clean_listings_for_job(c.db, job.id)
    assert [x.item_url for x in stored] == ["https://www.ebay.com/itm/1", "https://www.ebay.com/itm/2"]
    assert stored[0].is_auction and stored[0].bid_count == 2


def test_failed_ack_fails_job_with_upstream_message(tmp_path):
    strategy = FakeStrategy(result=ExtractionResult(success=False, error_message="Invalid application id"))
    c = _components(tmp_path, strategy)
    result = asyncio.run(c.pipeline.run("u1", "vase"))

    assert not result.success
    job = c.jobs.get(result.stats.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Invalid application id"


def test_strategy_exception_fails_job(tmp_path):
    c = _components(tmp_path, FakeStrategy(failing={"vase"}))
    result = asyncio.run(c.pipeline.run("u1", "vase"))

    assert not result.success
    job = c.jobs.get(result.stats.job_id)
    assert job.status == JobStatus.FAILED
    assert "browser crashed" in job.error_message


def test_empty_keyword_creates_no_job(tmp_path):
    c = _components(tmp_path, FakeStrategy())
    with pytest.raises(InvalidKeyword):
        c.pipeline.submit("u1", "   ")
    assert c.jobs.list_for_user("u1") == []


def test_quota_denied_before_job_creation(tmp_path):
    strategy = FakeStrategy(listings=[_raw(1)])
    c = _components(tmp_path, strategy)
    for i in range(5):
        c.pipeline.submit("u1", f"keyword {i}")

    with pytest.raises(QuotaDenied) as exc:
        c.pipeline.submit("u1", "one more")
    assert "free tier" in exc.value.reason

    result = asyncio.run(c.pipeline.run("u1", "one more"))
    assert not result.success
    assert len(c.jobs.list_for_user("u1")) == 5
    assert strategy.calls == []


def test_rate_limited_strategy_is_not_called(tmp_path):
    strategy = FakeStrategy(listings=[_raw(1)], service="ebay_finding_api")
    c = _components(tmp_path, strategy)
    c.limiter.set_daily_limit("ebay_finding_api", 5)
    for _ in range(5):
        c.limiter.increment_usage("ebay_finding_api")

    result = asyncio.run(c.pipeline.run("u1", "vase"))

    assert not result.success
    assert strategy.calls == []
    job = c.jobs.get(result.stats.job_id)
    assert job.status == JobStatus.FAILED
    assert "rate limit" in job.error_message.lower()


def test_rate_limited_strategy_falls_back_to_sample(tmp_path):
    strategy = FakeStrategy(listings=[_raw(1)], service="ebay_finding_api")
    c = _components(tmp_path, strategy, fallback=SampleDataStrategy(count=3))
    c.limiter.set_daily_limit("ebay_finding_api", 0)

    result = asyncio.run(c.pipeline.run("u1", "vase"))

    assert result.success
    assert result.stats.source == "sample"
    assert result.stats.clean_count == 3
    assert strategy.calls == []


def test_job_claimed_once(tmp_path):
    c = _components(tmp_path, FakeStrategy())
    job = c.jobs.create("u1", "vase")

    assert c.jobs.claim(job.id).status == JobStatus.RUNNING
    assert c.jobs.claim(job.id) is None


def test_invalid_transitions(tmp_path):
    c = _components(tmp_path, FakeStrategy())
    job = c.jobs.create("u1", "vase")

    with pytest.raises(JobStateError):
        c.jobs.complete(job.id, 1, 1)

    c.jobs.claim(job.id)
    c.jobs.complete(job.id, 1, 4)
    after = c.jobs.fail(job.id, "late failure")
    assert after.status == JobStatus.COMPLETED
    assert after.error_message is None


def test_drain_isolates_failures(tmp_path):
    strategy = FakeStrategy(listings=[_raw(1), _raw(2)], failing={"second"})
    c = _components(tmp_path, strategy)
    ids = [c.jobs.create("u1", kw).id for kw in ("first", "second", "third")]
    sleeps = Sleeps()

    report = asyncio.run(c.pipeline.drain(batch_size=5, pause=3.0, sleep=sleeps))

    assert [o.job_id for o in report.outcomes] == ids
    assert [o.success for o in report.outcomes] == [True, False, True]
    assert report.processed == 3
    assert report.failed == 1
    assert sleeps.delays == [3.0, 3.0]

    statuses = [c.jobs.get(i).status for i in ids]
    assert statuses == [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.COMPLETED]
    assert "browser crashed" in c.jobs.get(ids[1]).error_message
    assert c.jobs.get(ids[2]).items_found == 2


def test_drain_respects_batch_size_and_order(tmp_path):
    strategy = FakeStrategy()
    c = _components(tmp_path, strategy)
    for kw in ("a", "b", "c"):
        c.jobs.create("u1", kw)

    report = asyncio.run(c.pipeline.drain(batch_size=2, pause=0))

    assert report.processed == 2
    assert strategy.calls == ["a", "b"]
    assert [j.keyword for j in c.jobs.pending()] == ["c"]


def test_drain_with_nothing_pending(tmp_path):
    c = _components(tmp_path, FakeStrategy())
    report = asyncio.run(c.pipeline.drain())
    assert report.outcomes == []


def test_downstream_hook_runs_after_success(tmp_path):
    seen = []

    async def hook(user_id, keyword, listings):
        seen.append((user_id, keyword, len(listings)))
        raise RuntimeError("scoring unavailable")

    c = _components(tmp_path, FakeStrategy(listings=[_raw(1)]), on_completed=hook)
    result = asyncio.run(c.pipeline.run("u1", "vase"))

    assert result.success
    assert seen == [("u1", "vase", 1)]
    assert c.jobs.get(result.stats.job_id).status == JobStatus.COMPLETED


def test_background_runner_finishes_job(tmp_path):
    c = _components(tmp_path, SampleDataStrategy(count=4))

    async def go():
        job = c.pipeline.submit("u1", "abstract painting")
        task = c.runner.submit(job)
        assert c.runner.submit(job) is None
        await c.runner.wait_idle()
        assert task.done()
        await c.aclose()
        return job.id

    job_id = asyncio.run(go())
    job = c.jobs.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.items_found == 4
    assert c.runner.in_flight == 0


def test_export_frames(tmp_path):
    c = _components(tmp_path, SampleDataStrategy(count=5))
    asyncio.run(c.pipeline.run("u1", "vase"))

    df = export_clean_listings(c.db, "u1")
    assert len(df) == 5
    assert df["is_auction"].dtype == bool
    assert export_clean_listings(c.db, "u1", "other").empty
    assert len(export_jobs(c.db, "u1")) == 1


def test_clean_listings_for_user_and_keyword(tmp_path):
    c = _components(tmp_path, FakeStrategy(listings=[_raw(1), _raw(2)]))
    asyncio.run(c.pipeline.run("u1", "oil painting"))
    asyncio.run(c.pipeline.run("u2", "oil painting"))

    mine = get_clean_listings(c.db, "u1", "oil painting")
    assert len(mine) == 2
    assert all(x.user_id == "u1" for x in mine)
    assert get_clean_listings(c.db, "u1", "vase") == []


def test_terminal_statuses():
    assert JobStatus.COMPLETED.is_terminal
    assert JobStatus.FAILED.is_terminal
    assert not JobStatus.PENDING.is_terminal
    assert not JobStatus.RUNNING.is_terminal


def test_cli_arguments():
    args = parse_args(["--strategy", "sample", "scan", "abstract painting", "--mode", "sold", "--limit", "5"])
    assert args.command == "scan"
    assert args.keyword == "abstract painting"
    assert args.mode == "sold"
    assert args.limit == 5

    args = parse_args(["drain", "--batch-size", "2", "--pause", "0"])
    assert args.batch_size == 2
    assert args.pause == 0.0


def test_failed_job_insert_does_not_use_quota(tmp_path, monkeypatch):
    c = _components(tmp_path, FakeStrategy())

    def broken_create(user_id, keyword, mode="active"):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(c.jobs, "create", broken_create)
    with pytest.raises(sqlite3.OperationalError):
        c.pipeline.submit("u1", "vase")
    assert c.quota.scrapes_used("u1") == 0


def test_usage_recording_failure_fails_the_job(tmp_path, monkeypatch):
    c = _components(tmp_path, FakeStrategy())

    def broken_record(user_id):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(c.quota, "record_scrape", broken_record)
    with pytest.raises(sqlite3.OperationalError):
        c.pipeline.submit("u1", "vase")

    job = c.jobs.latest_for_user("u1")
    assert job.status == JobStatus.FAILED
    assert "Could not record usage" in job.error_message
