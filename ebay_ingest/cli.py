"""
Command-line entry point: scan a keyword, drain the queue, export results.
"""
import argparse
import asyncio
import json
import os
import sys

from .container import build_components
from .export import export_clean_listings, export_jobs, save_frame
from .jobs import DEFAULT_DRAIN_BATCH, DEFAULT_DRAIN_PAUSE
from .models import DEFAULT_MODE, LISTING_MODES
from .strategies import STRATEGY_NAMES, ExtractOptions
from .utils import init_logger, now_iso

logger = None


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="eBay listing ingestion: scrape, clean and store listings")
    ap.add_argument("--db", type=str, default=os.getenv("INGEST_DB", "ebay_ingest.db"), help="Path to SQLite DB")
    ap.add_argument("--strategy", choices=STRATEGY_NAMES, default=os.getenv("EXTRACTION_STRATEGY", "sample"),
                    help="Extraction strategy")
    ap.add_argument("--fallback-to-sample", action="store_true",
                    help="Use sample data when the API budget is exhausted")
    ap.add_argument("--headed", action="store_true", help="Show the browser window (dom strategy)")

    # Logging
    lvl_choices = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    ap.add_argument("--log-level", choices=lvl_choices, default=None,
                    help="Global log level for both console and file (overrides --log-console/--log-file).")
    ap.add_argument("--log-console", choices=lvl_choices, default=os.getenv("LOG_CONSOLE", "INFO"),
                    help="Console log level (default from env LOG_CONSOLE or INFO).")
    ap.add_argument("--log-file", choices=lvl_choices, default=os.getenv("LOG_FILE", "DEBUG"),
                    help="File log level (default from env LOG_FILE or DEBUG).")
    ap.add_argument("--log-file-path", default=os.getenv("LOG_FILE_PATH", "ebay_ingest.log"),
                    help="Path to log file (default from env LOG_FILE_PATH or ebay_ingest.log).")
    ap.add_argument("--no-file-log", action="store_true", help="Disable file logging (only console output).")

    sub = ap.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan one keyword now")
    scan.add_argument("keyword", help="Search keyword, e.g. 'abstract painting'")
    scan.add_argument("--user", default="cli", help="Owning user id")
    scan.add_argument("--mode", choices=LISTING_MODES, default=DEFAULT_MODE)
    scan.add_argument("--limit", type=int, default=100, help="Maximum listings to extract")
    scan.add_argument("--max-pages", type=int, default=3, help="Result pages to visit (dom strategy)")

    drain = sub.add_parser("drain", help="Run pending jobs from the queue")
    drain.add_argument("--batch-size", type=int, default=int(os.getenv("DRAIN_BATCH_SIZE", DEFAULT_DRAIN_BATCH)))
    drain.add_argument("--pause", type=float, default=float(os.getenv("DRAIN_PAUSE_SECONDS", DEFAULT_DRAIN_PAUSE)))

    jobs = sub.add_parser("jobs", help="List a user's recent jobs")
    jobs.add_argument("--user", default="cli")
    jobs.add_argument("--limit", type=int, default=20)
    jobs.add_argument("--out", type=str, default=None, help="Write the full job history to CSV/XLSX instead")

    export = sub.add_parser("export", help="Export clean listings to CSV/XLSX")
    export.add_argument("--user", default="cli")
    export.add_argument("--keyword", default=None)
    export.add_argument("--out", type=str, default="ebay_listings.csv", help="CSV/XLSX output path")

    return ap.parse_args(argv)


async def _scan(components, args) -> int:
    result = await components.pipeline.run(args.user, args.keyword, args.mode)
    stats = result.stats
    if result.success:
        logger.info(
            f">>> Job {stats.job_id}: {stats.clean_count} clean listings "
            f"({stats.raw_count} raw, {stats.duplicates_dropped} duplicates) via {stats.source}"
        )
        return 0
    logger.error(f">>> Scan failed: {result.error}")
    return 1


async def _drain(components, args) -> int:
    report = await components.pipeline.drain(batch_size=args.batch_size, pause=args.pause)
    for o in report.outcomes:
        status = "ok" if o.success else f"failed: {o.error}"
        logger.info(f">>> Job {o.job_id} ({o.keyword}): {o.count} items, {status}")
    return 1 if report.failed else 0


async def _run(args) -> int:
    components = build_components(
        args.db,
        strategy=args.strategy,
        app_id=os.getenv("EBAY_APP_ID", ""),
        environment=os.getenv("EBAY_ENVIRONMENT", "SANDBOX"),
        headless=not args.headed,
        fallback_to_sample=args.fallback_to_sample,
        options=ExtractOptions(
            limit=getattr(args, "limit", 100),
            max_pages=getattr(args, "max_pages", 3),
        ),
    )
    try:
        if args.command == "scan":
            return await _scan(components, args)
        if args.command == "drain":
            return await _drain(components, args)
        if args.command == "jobs":
            if args.out:
                df = export_jobs(components.db, args.user)
                save_frame(df, args.out)
                logger.info(f">>> Jobs: {len(df)} rows -> {args.out}")
                return 0
            for job in components.jobs.list_for_user(args.user, limit=args.limit):
                print(json.dumps(job.to_dict(), ensure_ascii=False))
            return 0
        if args.command == "export":
            df = export_clean_listings(components.db, args.user, args.keyword)
            save_frame(df, args.out)
            logger.info(f">>> Export: {len(df)} rows -> {args.out}")
            return 0
        return 2
    finally:
        await components.aclose()


def main(argv=None) -> int:
    args = parse_args(argv)
    eff_console = args.log_level or args.log_console
    eff_file = args.log_level or args.log_file
    global logger
    logger = init_logger(
        console_level=eff_console,
        file_level=eff_file,
        log_file=None if args.no_file_log else args.log_file_path
    )
    logger.info(
        f"Logger initialized: console={eff_console}, "
        f"file={'DISABLED' if args.no_file_log else eff_file}, "
        f"path={'N/A' if args.no_file_log else args.log_file_path}"
    )
    logger.info(f">>> Run started at {now_iso()}")
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
