"""
Interchangeable extraction strategies and their selection.
"""
import logging
from typing import Dict, Optional

from ..rate_limiter import RateLimiter
from .base import ExtractionStrategy, ExtractOptions
from .dom import DomScraperStrategy
from .finding_api import FindingApiStrategy
from .sample import SampleDataStrategy

logger = logging.getLogger(__name__)

STRATEGY_NAMES = ("api", "dom", "sample")


class StrategyRegistry:
    """
    Maps listing modes to strategies.

    Both modes go through the same interface; `per_mode` overrides the
    default for one mode. The fallback is only used when the selected
    strategy's rate limit is exhausted.
    """

    def __init__(self, default: ExtractionStrategy,
                 per_mode: Optional[Dict[str, ExtractionStrategy]] = None,
                 fallback: Optional[ExtractionStrategy] = None):
        self.default = default
        self.per_mode = dict(per_mode or {})
        self.fallback = fallback

    def select(self, mode: str) -> ExtractionStrategy:
        return self.per_mode.get(mode, self.default)

    def all(self):
        seen = []
        for s in [self.default, *self.per_mode.values(), self.fallback]:
            if s is not None and s not in seen:
                seen.append(s)
        return seen

    async def aclose(self) -> None:
        for strategy in self.all():
            try:
                await strategy.aclose()
            except Exception as e:
                logger.error(f"Failed to close strategy {strategy.name}: {e}")


def build_strategy(name: str, limiter: RateLimiter, app_id: str = "",
                   environment: str = "SANDBOX", headless: bool = True) -> ExtractionStrategy:
    if name == "api":
        return FindingApiStrategy(app_id=app_id, limiter=limiter, environment=environment)
    if name == "dom":
        return DomScraperStrategy(headless=headless)
    if name == "sample":
        return SampleDataStrategy()
    raise ValueError(f"Unknown extraction strategy: {name!r} (expected one of {STRATEGY_NAMES})")


def build_registry(name: str, limiter: RateLimiter, app_id: str = "", environment: str = "SANDBOX",
                   headless: bool = True, fallback_to_sample: bool = False) -> StrategyRegistry:
    default = build_strategy(name, limiter, app_id=app_id, environment=environment, headless=headless)
    fallback = SampleDataStrategy() if fallback_to_sample and name != "sample" else None
    return StrategyRegistry(default=default, fallback=fallback)


__all__ = [
    "ExtractionStrategy",
    "ExtractOptions",
    "DomScraperStrategy",
    "FindingApiStrategy",
    "SampleDataStrategy",
    "StrategyRegistry",
    "STRATEGY_NAMES",
    "build_strategy",
    "build_registry",
]
