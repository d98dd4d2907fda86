"""
Database-backed daily call budget for external services.
"""
import logging
from typing import Optional

from .database import Database
from .errors import RateLimitExceeded
from .models import RateLimitStatus
from .utils import now_iso, today_utc

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "ebay_finding_api"
DEFAULT_DAILY_LIMIT = 5000
WARNING_THRESHOLD = 0.8


class RateLimiter:
    """
    Shared daily call counter, one row per (service, UTC date).

    The counter only moves through `increment_usage`, which is a single
    upsert-increment statement, so concurrent callers never lose updates.
    """

    def __init__(self, db: Database, default_limit: int = DEFAULT_DAILY_LIMIT):
        self.db = db
        self.default_limit = default_limit

    def daily_limit(self, service_name: str) -> int:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT daily_limit FROM service_limits WHERE service_name = ?", (service_name,)
            ).fetchone()
        return row["daily_limit"] if row else self.default_limit

    def set_daily_limit(self, service_name: str, limit: int) -> None:
        if limit < 0:
            raise ValueError("daily limit must be non-negative")
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT INTO service_limits (service_name, daily_limit) VALUES (?, ?)
            ON CONFLICT(service_name) DO UPDATE SET daily_limit = excluded.daily_limit
            """, (service_name, limit))
            conn.execute(
                "UPDATE global_api_usage SET daily_limit = ? WHERE service_name = ? AND usage_date = ?",
                (limit, service_name, today_utc()),
            )

    def check_limit(self, service_name: str = DEFAULT_SERVICE,
                    usage_date: Optional[str] = None) -> RateLimitStatus:
        """Report today's usage; a missing row means nothing has been used yet."""
        usage_date = usage_date or today_utc()
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT call_count, daily_limit FROM global_api_usage "
                "WHERE service_name = ? AND usage_date = ?",
                (service_name, usage_date),
            ).fetchone()

        current = row["call_count"] if row else 0
        limit = row["daily_limit"] if row else self.daily_limit(service_name)
        remaining = max(limit - current, 0)

        if limit > 0 and current >= limit * WARNING_THRESHOLD:
            logger.warning(
                f"[Rate Limiter] {service_name} is at {round(current / limit * 100)}% of daily limit!"
            )

        return RateLimitStatus(
            current=current,
            limit=limit,
            remaining=remaining,
            is_blocked=current >= limit,
        )

    def increment_usage(self, service_name: str = DEFAULT_SERVICE) -> int:
        """Atomically add one call to today's counter and return the new count."""
        usage_date = today_utc()
        limit = self.daily_limit(service_name)
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT INTO global_api_usage (service_name, usage_date, call_count, daily_limit)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(service_name, usage_date)
            DO UPDATE SET call_count = call_count + 1
            """, (service_name, usage_date, limit))
            row = conn.execute(
                "SELECT call_count FROM global_api_usage WHERE service_name = ? AND usage_date = ?",
                (service_name, usage_date),
            ).fetchone()
        logger.debug(f"[Rate Limiter] {service_name} usage {row['call_count']}/{limit} at {now_iso()}")
        return row["call_count"]

    def ensure_available(self, service_name: str = DEFAULT_SERVICE) -> RateLimitStatus:
        """Fail fast with RateLimitExceeded when the budget is spent."""
        status = self.check_limit(service_name)
        if status.is_blocked:
            raise RateLimitExceeded(service_name, status)
        return status
