"""
SQLite storage for scrape jobs, listings, and usage counters.
"""
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from .models import CleanListing, RawListing
from .utils import now_iso

logger = logging.getLogger(__name__)


# Schema definitions
DDL_SCRAPE_JOBS = """
CREATE TABLE IF NOT EXISTS scrape_jobs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT NOT NULL,
  keyword TEXT NOT NULL,
  mode TEXT NOT NULL DEFAULT 'active',
  status TEXT NOT NULL DEFAULT 'pending'
    CHECK (status IN ('pending', 'running', 'completed', 'failed')),
  pages_scraped INTEGER NOT NULL DEFAULT 0,
  items_found INTEGER NOT NULL DEFAULT 0,
  error_message TEXT,
  created_at TEXT NOT NULL,
  started_at TEXT,
  completed_at TEXT
);
"""

DDL_LISTINGS_RAW = """
CREATE TABLE IF NOT EXISTS sold_listings_raw (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  job_id INTEGER,
  search_keyword TEXT,
  item_url TEXT,
  title_raw TEXT,
  price_raw TEXT,
  shipping_raw TEXT,
  bids_raw TEXT,
  sold_date_raw TEXT,
  image_url TEXT,
  source TEXT,
  scraped_at TEXT
);
"""

DDL_LISTINGS_CLEAN = """
CREATE TABLE IF NOT EXISTS sold_listings_clean (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  job_id INTEGER,
  user_id TEXT NOT NULL,
  search_keyword TEXT NOT NULL,
  item_url TEXT NOT NULL,
  title TEXT,
  currency TEXT NOT NULL DEFAULT 'USD',
  sold_price REAL CHECK (sold_price IS NULL OR sold_price >= 0),
  shipping_price REAL NOT NULL DEFAULT 0,
  is_auction INTEGER NOT NULL DEFAULT 0,
  bid_count INTEGER NOT NULL DEFAULT 0 CHECK (bid_count >= 0),
  sold_date TEXT,
  dedupe_hash TEXT,
  image_url TEXT,
  source TEXT,
  created_at TEXT
);
"""

DDL_API_USAGE = """
CREATE TABLE IF NOT EXISTS global_api_usage (
  service_name TEXT NOT NULL,
  usage_date TEXT NOT NULL,
  call_count INTEGER NOT NULL DEFAULT 0,
  daily_limit INTEGER NOT NULL,
  PRIMARY KEY (service_name, usage_date)
);
"""

DDL_SERVICE_LIMITS = """
CREATE TABLE IF NOT EXISTS service_limits (
  service_name TEXT PRIMARY KEY,
  daily_limit INTEGER NOT NULL
);
"""

DDL_USER_PROFILES = """
CREATE TABLE IF NOT EXISTS user_profiles (
  id TEXT PRIMARY KEY,
  subscription_tier TEXT NOT NULL DEFAULT 'free'
);
"""

DDL_USER_USAGE = """
CREATE TABLE IF NOT EXISTS user_usage_tracking (
  user_id TEXT NOT NULL,
  period_start TEXT NOT NULL,
  scrapes_used INTEGER NOT NULL DEFAULT 0,
  updated_at TEXT,
  PRIMARY KEY (user_id, period_start)
);
"""

DDL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_scrape_jobs_status ON scrape_jobs(status, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_scrape_jobs_user ON scrape_jobs(user_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_clean_user_keyword ON sold_listings_clean(user_id, search_keyword);",
    "CREATE INDEX IF NOT EXISTS idx_clean_job ON sold_listings_clean(job_id);",
]


class Database:
    """
    Thin wrapper over a SQLite file.

    Every operation opens a short-lived connection, so one instance can be
    shared by concurrent tasks and threads. Writes that must be atomic use
    `transaction()`, which takes the write lock up front.
    """

    def __init__(self, path: str, timeout: float = 30.0):
        self.path = path
        self.timeout = timeout

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection for single statements and reads."""
        conn = self._open()
        try:
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Immediate write transaction; commits on success, rolls back on error."""
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def init(self) -> None:
        """Create tables and indexes if they do not exist."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self.transaction() as conn:
            for ddl in (DDL_SCRAPE_JOBS, DDL_LISTINGS_RAW, DDL_LISTINGS_CLEAN,
                        DDL_API_USAGE, DDL_SERVICE_LIMITS, DDL_USER_PROFILES, DDL_USER_USAGE):
                conn.execute(ddl)
            for ddl in DDL_INDEXES:
                conn.execute(ddl)

    def ping(self) -> bool:
        with self.connect() as conn:
            conn.execute("SELECT 1").fetchone()
        return True


def insert_raw_listings(db: Database, job_id: Optional[int], listings: Iterable[RawListing]) -> int:
    """Keep the unparsed listings of a job for audit."""
    ts = now_iso()
    rows = [
        (job_id, r.search_keyword, r.item_url, r.title, r.price_text, r.shipping_text,
         r.bid_text, r.sold_date_text, r.image_url, r.source, ts)
        for r in listings
    ]
    if not rows:
        return 0
    with db.transaction() as conn:
        conn.executemany("""
        INSERT INTO sold_listings_raw (
          job_id, search_keyword, item_url, title_raw, price_raw, shipping_raw,
          bids_raw, sold_date_raw, image_url, source, scraped_at
        ) VALUES (?,?,?,?,?,?,?,?,?,?,?)
        """, rows)
    return len(rows)


def insert_clean_listings(db: Database, listings: Iterable[CleanListing]) -> int:
    """Write clean listings in one transaction. Returns the number of rows written."""
    ts = now_iso()
    rows = [
        (lst.job_id, lst.user_id, lst.search_keyword, lst.item_url, lst.title, lst.currency,
         lst.sold_price, lst.shipping_price, int(lst.is_auction), lst.bid_count, lst.sold_date,
         lst.dedupe_hash, lst.image_url, lst.source, ts)
        for lst in listings
    ]
    if not rows:
        return 0
    with db.transaction() as conn:
        conn.executemany("""
        INSERT INTO sold_listings_clean (
          job_id, user_id, search_keyword, item_url, title, currency,
          sold_price, shipping_price, is_auction, bid_count, sold_date,
          dedupe_hash, image_url, source, created_at
        ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """, rows)
    return len(rows)


def _row_to_clean(row: sqlite3.Row) -> CleanListing:
    return CleanListing(
        user_id=row["user_id"],
        search_keyword=row["search_keyword"],
        item_url=row["item_url"],
        title=row["title"] or "",
        currency=row["currency"],
        sold_price=row["sold_price"],
        shipping_price=row["shipping_price"],
        is_auction=bool(row["is_auction"]),
        bid_count=row["bid_count"],
        sold_date=row["sold_date"],
        dedupe_hash=row["dedupe_hash"] or "",
        image_url=row["image_url"],
        source=row["source"] or "",
        job_id=row["job_id"],
    )


def get_clean_listings_for_job(db: Database, job_id: int) -> List[CleanListing]:
    with db.connect() as conn:
        rows = conn.execute(
            "SELECT * FROM sold_listings_clean WHERE job_id = ? ORDER BY id ASC", (job_id,)
        ).fetchall()
    return [_row_to_clean(r) for r in rows]


def get_clean_listings(db: Database, user_id: str, keyword: Optional[str] = None,
                       limit: int = 1000) -> List[CleanListing]:
    """Clean listings of a user, newest first; this is what downstream scoring reads."""
    q = "SELECT * FROM sold_listings_clean WHERE user_id = ?"
    params: list = [user_id]
    if keyword:
        q += " AND search_keyword = ?"
        params.append(keyword)
    q += " ORDER BY id DESC LIMIT ?"
    params.append(limit)
    with db.connect() as conn:
        rows = conn.execute(q, params).fetchall()
    return [_row_to_clean(r) for r in rows]
