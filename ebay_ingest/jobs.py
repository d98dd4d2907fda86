"""
Scrape job queue and lifecycle transitions.

    pending -> running -> completed | failed

The pending -> running update is the pickup signal: it only succeeds for
one caller, so a job is never executed twice even with concurrent drains.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from .database import Database
from .errors import InvalidKeyword, JobStateError
from .models import DEFAULT_MODE, LISTING_MODES, JobStatus, PipelineResult, ScrapeJob
from .utils import normalize_keyword, now_iso

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_BATCH = 5
DEFAULT_DRAIN_PAUSE = 3.0


@dataclass
class DrainOutcome:
    job_id: int
    keyword: str
    success: bool
    count: int = 0
    error: Optional[str] = None


@dataclass
class DrainReport:
    outcomes: List[DrainOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


class JobQueue:
    def __init__(self, db: Database):
        self.db = db

    def create(self, user_id: str, keyword: str, mode: str = DEFAULT_MODE) -> ScrapeJob:
        keyword = normalize_keyword(keyword)
        if not keyword:
            raise InvalidKeyword("Keyword is required")
        if mode not in LISTING_MODES:
            raise ValueError(f"Unknown mode: {mode!r}")
        with self.db.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO scrape_jobs (user_id, keyword, mode, status, created_at) VALUES (?,?,?,?,?)",
                (user_id, keyword, mode, JobStatus.PENDING.value, now_iso()),
            )
            job_id = cur.lastrowid
        logger.info(f"Scrape job {job_id} created for {keyword!r} ({mode})")
        return self.get(job_id)

    def get(self, job_id: int) -> Optional[ScrapeJob]:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM scrape_jobs WHERE id = ?", (job_id,)).fetchone()
        return ScrapeJob.from_row(row) if row else None

    def latest_for_user(self, user_id: str) -> Optional[ScrapeJob]:
        jobs = self.list_for_user(user_id, limit=1)
        return jobs[0] if jobs else None

    def list_for_user(self, user_id: str, limit: int = 20) -> List[ScrapeJob]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM scrape_jobs WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [ScrapeJob.from_row(r) for r in rows]

    def pending(self, limit: int = DEFAULT_DRAIN_BATCH) -> List[ScrapeJob]:
        """Oldest pending jobs first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM scrape_jobs WHERE status = ? ORDER BY created_at ASC, id ASC LIMIT ?",
                (JobStatus.PENDING.value, limit),
            ).fetchall()
        return [ScrapeJob.from_row(r) for r in rows]

    def claim(self, job_id: int) -> Optional[ScrapeJob]:
        """Move a pending job to running. Returns None if it was not pending."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE scrape_jobs SET status = ?, started_at = ? WHERE id = ? AND status = ?",
                (JobStatus.RUNNING.value, now_iso(), job_id, JobStatus.PENDING.value),
            )
            claimed = cur.rowcount == 1
        if not claimed:
            logger.debug(f"Job {job_id} was already picked up")
            return None
        return self.get(job_id)

    def complete(self, job_id: int, pages_scraped: int, items_found: int) -> ScrapeJob:
        with self.db.transaction() as conn:
            cur = conn.execute("""
            UPDATE scrape_jobs
            SET status = ?, completed_at = ?, pages_scraped = ?, items_found = ?, error_message = NULL
            WHERE id = ? AND status = ?
            """, (JobStatus.COMPLETED.value, now_iso(), pages_scraped, items_found,
                  job_id, JobStatus.RUNNING.value))
            if cur.rowcount != 1:
                raise JobStateError(f"Job {job_id} is not running; cannot complete")
        logger.info(f"Job {job_id} completed: {items_found} items over {pages_scraped} pages")
        return self.get(job_id)

    def fail(self, job_id: int, error_message: str) -> Optional[ScrapeJob]:
        """Mark a non-terminal job failed. Terminal jobs are left untouched."""
        message = error_message or "Unknown error"
        with self.db.transaction() as conn:
            cur = conn.execute("""
            UPDATE scrape_jobs SET status = ?, completed_at = ?, error_message = ?
            WHERE id = ? AND status IN (?, ?)
            """, (JobStatus.FAILED.value, now_iso(), message, job_id,
                  JobStatus.PENDING.value, JobStatus.RUNNING.value))
            updated = cur.rowcount == 1
        if updated:
            logger.error(f"Job {job_id} failed: {message}")
        else:
            logger.warning(f"Job {job_id} already terminal; failure not recorded: {message}")
        return self.get(job_id)

    async def drain(
        self,
        run_job: Callable[[ScrapeJob], Awaitable[PipelineResult]],
        batch_size: int = DEFAULT_DRAIN_BATCH,
        pause: float = DEFAULT_DRAIN_PAUSE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> DrainReport:
        """
        Execute up to `batch_size` pending jobs, one after another.

        Each job is claimed right before it runs and its failure is contained
        to that job. `pause` seconds separate consecutive jobs.
        """
        report = DrainReport()
        candidates = self.pending(batch_size)
        logger.info(f"[Drain] {len(candidates)} pending jobs")

        for i, candidate in enumerate(candidates):
            job = self.claim(candidate.id)
            if job is None:
                continue

            try:
                result = await run_job(job)
                report.outcomes.append(DrainOutcome(
                    job_id=job.id,
                    keyword=job.keyword,
                    success=result.success,
                    count=result.stats.clean_count,
                    error=result.error,
                ))
            except Exception as e:
                logger.exception(f"[Drain] Error processing job {job.id}")
                self.fail(job.id, str(e) or type(e).__name__)
                report.outcomes.append(DrainOutcome(
                    job_id=job.id, keyword=job.keyword, success=False, error=str(e) or type(e).__name__,
                ))

            if pause and i < len(candidates) - 1:
                await sleep(pause)

        logger.info(f"[Drain] Processed {report.processed} jobs ({report.failed} failed)")
        return report
