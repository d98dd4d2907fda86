"""
Per-user daily scrape quota by subscription tier.
"""
import logging

from .database import Database
from .models import QuotaDecision
from .utils import now_iso, today_utc

logger = logging.getLogger(__name__)

TIER_DAILY_SCRAPES = {
    "free": 5,
    "artist": 100,
    "studio": 500,
    "empire": 5000,
}
DEFAULT_TIER = "free"


class QuotaChecker:
    def __init__(self, db: Database):
        self.db = db

    def tier_for(self, user_id: str) -> str:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT subscription_tier FROM user_profiles WHERE id = ?", (user_id,)
            ).fetchone()
        tier = row["subscription_tier"] if row else DEFAULT_TIER
        return tier if tier in TIER_DAILY_SCRAPES else DEFAULT_TIER

    def set_tier(self, user_id: str, tier: str) -> None:
        if tier not in TIER_DAILY_SCRAPES:
            raise ValueError(f"Unknown tier: {tier}")
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT INTO user_profiles (id, subscription_tier) VALUES (?, ?)
            ON CONFLICT(id) DO UPDATE SET subscription_tier = excluded.subscription_tier
            """, (user_id, tier))

    def scrapes_used(self, user_id: str) -> int:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT scrapes_used FROM user_usage_tracking WHERE user_id = ? AND period_start = ?",
                (user_id, today_utc()),
            ).fetchone()
        return row["scrapes_used"] if row else 0

    def can_scrape(self, user_id: str) -> QuotaDecision:
        tier = self.tier_for(user_id)
        limit = TIER_DAILY_SCRAPES[tier]
        used = self.scrapes_used(user_id)
        if used >= limit:
            return QuotaDecision(
                allowed=False,
                tier=tier,
                used=used,
                limit=limit,
                reason=(f"You have reached your daily scrape limit for the {tier} tier. "
                        "Please upgrade for more."),
            )
        return QuotaDecision(allowed=True, tier=tier, used=used, limit=limit)

    def record_scrape(self, user_id: str) -> int:
        """Count one scrape against today's period. Returns the new usage."""
        period = today_utc()
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT INTO user_usage_tracking (user_id, period_start, scrapes_used, updated_at)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(user_id, period_start)
            DO UPDATE SET scrapes_used = scrapes_used + 1, updated_at = excluded.updated_at
            """, (user_id, period, now_iso()))
            row = conn.execute(
                "SELECT scrapes_used FROM user_usage_tracking WHERE user_id = ? AND period_start = ?",
                (user_id, period),
            ).fetchone()
        return row["scrapes_used"]
