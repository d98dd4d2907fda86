"""
Common interface for extraction strategies.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..models import DEFAULT_MODE, ExtractionResult


@dataclass
class ExtractOptions:
    mode: str = DEFAULT_MODE
    limit: int = 100
    max_pages: int = 3
    page_delay: float = 2.5


class ExtractionStrategy(ABC):
    """
    Produces RawListings for a keyword.

    Strategies raise on total failure (network down, browser won't launch)
    and return `ExtractionResult(success=False, ...)` when the upstream
    service answers with an explicit error.
    """

    name: str = ""
    source: str = ""

    # Service name checked against the rate limiter before calling out; None if ungated.
    rate_limited_service: Optional[str] = None

    @abstractmethod
    async def extract(self, keyword: str, options: ExtractOptions) -> ExtractionResult:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release long-lived resources. Most strategies hold none."""
