"""
Composition root: builds each component once and wires the references.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from .cleaner import Cleaner
from .core import DownstreamHook, Pipeline
from .database import Database
from .jobs import JobQueue
from .quota import QuotaChecker
from .rate_limiter import DEFAULT_DAILY_LIMIT, RateLimiter
from .strategies import ExtractOptions, StrategyRegistry, build_registry
from .tasks import BackgroundRunner

logger = logging.getLogger(__name__)


@dataclass
class Components:
    db: Database
    limiter: RateLimiter
    quota: QuotaChecker
    strategies: StrategyRegistry
    cleaner: Cleaner
    jobs: JobQueue
    pipeline: Pipeline
    runner: BackgroundRunner

    async def aclose(self, timeout: float = 30.0) -> None:
        await self.runner.shutdown(timeout)
        await self.strategies.aclose()


def build_components(
    db_path: str,
    strategy: str = "sample",
    app_id: str = "",
    environment: str = "SANDBOX",
    headless: bool = True,
    fallback_to_sample: bool = False,
    daily_limit: int = DEFAULT_DAILY_LIMIT,
    options: Optional[ExtractOptions] = None,
    on_completed: Optional[DownstreamHook] = None,
    strategies: Optional[StrategyRegistry] = None,
) -> Components:
    db = Database(db_path)
    db.init()
    limiter = RateLimiter(db, default_limit=daily_limit)
    quota = QuotaChecker(db)
    if strategies is None:
        strategies = build_registry(strategy, limiter, app_id=app_id, environment=environment,
                                    headless=headless, fallback_to_sample=fallback_to_sample)
    cleaner = Cleaner()
    jobs = JobQueue(db)
    pipeline = Pipeline(
        db=db,
        jobs=jobs,
        strategies=strategies,
        cleaner=cleaner,
        limiter=limiter,
        quota=quota,
        options=options,
        on_completed=on_completed,
    )
    logger.info(f"Pipeline ready: db={db_path}, strategy={strategies.default.name}")
    return Components(
        db=db,
        limiter=limiter,
        quota=quota,
        strategies=strategies,
        cleaner=cleaner,
        jobs=jobs,
        pipeline=pipeline,
        runner=BackgroundRunner(pipeline),
    )
