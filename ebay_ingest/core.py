"""
Pipeline orchestration: extraction -> cleaning -> persistence -> job completion.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional

from .cleaner import Cleaner
from .database import Database, insert_clean_listings, insert_raw_listings
from .errors import ExtractionError, InvalidKeyword, QuotaDenied, RateLimitExceeded
from .jobs import JobQueue
from .models import (
    DEFAULT_MODE,
    LISTING_MODES,
    CleanListing,
    PipelineResult,
    PipelineStats,
    ScrapeJob,
)
from .quota import QuotaChecker
from .rate_limiter import RateLimiter
from .strategies import ExtractionStrategy, ExtractOptions, StrategyRegistry
from .utils import normalize_keyword

logger = logging.getLogger(__name__)

DownstreamHook = Callable[[str, str, List[CleanListing]], Awaitable[None]]

DEFAULT_EXTRACTION_TIMEOUT = 300.0


class Pipeline:
    """
    Runs one keyword scan for one user and records the outcome on its job.

    Stages run strictly in order. Whatever goes wrong after the job is
    claimed ends with the job in `failed`; `run` and `execute_claimed`
    report failures through PipelineResult instead of raising.
    """

    def __init__(
        self,
        db: Database,
        jobs: JobQueue,
        strategies: StrategyRegistry,
        cleaner: Optional[Cleaner] = None,
        limiter: Optional[RateLimiter] = None,
        quota: Optional[QuotaChecker] = None,
        options: Optional[ExtractOptions] = None,
        on_completed: Optional[DownstreamHook] = None,
        keep_raw: bool = True,
        extraction_timeout: float = DEFAULT_EXTRACTION_TIMEOUT,
    ):
        self.db = db
        self.jobs = jobs
        self.strategies = strategies
        self.cleaner = cleaner or Cleaner()
        self.limiter = limiter
        self.quota = quota
        self.options = options or ExtractOptions()
        self.on_completed = on_completed
        self.keep_raw = keep_raw
        self.extraction_timeout = extraction_timeout

    def submit(self, user_id: str, keyword: str, mode: str = DEFAULT_MODE) -> ScrapeJob:
        """
        Validate a request and queue it as a pending job.

        Raises InvalidKeyword for an empty keyword and QuotaDenied when the
        user's plan is exhausted; no job is created in either case.
        """
        keyword = normalize_keyword(keyword)
        if not keyword:
            raise InvalidKeyword("Keyword is required")
        if mode not in LISTING_MODES:
            raise InvalidKeyword(f"Unknown mode {mode!r}; expected one of {', '.join(LISTING_MODES)}")

        if self.quota is not None:
            decision = self.quota.can_scrape(user_id)
            if not decision.allowed:
                logger.info(f"Quota denied for user {user_id}: {decision.reason}")
                raise QuotaDenied(decision.reason or "Scrape limit reached")

        job = self.jobs.create(user_id, keyword, mode)
        if self.quota is not None:
            # charged only once the job row exists
            try:
                self.quota.record_scrape(user_id)
            except Exception as e:
                self.jobs.fail(job.id, f"Could not record usage: {e}")
                raise
        return job

    async def run(self, user_id: str, keyword: str, mode: str = DEFAULT_MODE) -> PipelineResult:
        """Submit and immediately execute a scan in the current task."""
        stats = PipelineStats(keyword=normalize_keyword(keyword), mode=mode)
        try:
            job = self.submit(user_id, keyword, mode)
        except (InvalidKeyword, QuotaDenied) as e:
            return PipelineResult(success=False, stats=stats, error=str(e))

        claimed = self.jobs.claim(job.id)
        if claimed is None:
            stats.job_id = job.id
            return PipelineResult(success=False, stats=stats, error=f"Job {job.id} was picked up elsewhere")
        return await self.execute_claimed(claimed)

    def _select_strategy(self, mode: str) -> ExtractionStrategy:
        strategy = self.strategies.select(mode)
        service = strategy.rate_limited_service
        if service and self.limiter is not None:
            status = self.limiter.check_limit(service)
            if status.is_blocked:
                if self.strategies.fallback is not None:
                    logger.warning(
                        f"{service} budget exhausted; using {self.strategies.fallback.name} strategy"
                    )
                    return self.strategies.fallback
                raise RateLimitExceeded(service, status)
        return strategy

    async def execute_claimed(self, job: ScrapeJob) -> PipelineResult:
        """Run extraction, cleaning and persistence for a job already in `running`."""
        stats = PipelineStats(keyword=job.keyword, mode=job.mode, job_id=job.id)
        options = replace(self.options, mode=job.mode)

        try:
            strategy = self._select_strategy(job.mode)
            stats.source = strategy.source
            logger.info(f"Job {job.id}: extracting {job.keyword!r} ({job.mode}) via {strategy.name}")

            try:
                result = await asyncio.wait_for(strategy.extract(job.keyword, options),
                                                timeout=self.extraction_timeout)
            except asyncio.TimeoutError:
                raise ExtractionError(f"Extraction timed out after {self.extraction_timeout:.0f}s")
            if not result.success:
                raise ExtractionError(result.error_message or "Extraction failed")

            stats.raw_count = len(result.listings)
            stats.pages_scraped = result.pages_scraped

            if self.keep_raw:
                insert_raw_listings(self.db, job.id, result.listings)

            report = self.cleaner.clean(result.listings, job.user_id, job.id)
            stats.clean_count = len(report.listings)
            stats.duplicates_dropped = report.duplicates_dropped
            stats.rejected_count = report.rejected

            insert_clean_listings(self.db, report.listings)
            self.jobs.complete(job.id, stats.pages_scraped, stats.clean_count)
        except asyncio.CancelledError:
            self.jobs.fail(job.id, "Cancelled")
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Job {job.id} error: {message}")
            self.jobs.fail(job.id, message)
            return PipelineResult(success=False, stats=stats, error=message)

        await self._notify_downstream(job, report.listings)
        return PipelineResult(success=True, stats=stats)

    async def _notify_downstream(self, job: ScrapeJob, listings: List[CleanListing]) -> None:
        if self.on_completed is None:
            return
        try:
            await self.on_completed(job.user_id, job.keyword, listings)
        except Exception:
            logger.exception(f"Downstream processing failed for job {job.id}")

    async def drain(self, batch_size: int = 5, pause: float = 3.0, sleep=asyncio.sleep):
        return await self.jobs.drain(self.execute_claimed, batch_size=batch_size, pause=pause, sleep=sleep)
