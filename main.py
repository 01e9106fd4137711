#!/usr/bin/env python3
"""Job posting crawler: scrape job boards, normalize, deduplicate and store.

Usage:
    python main.py crawl              crawl every enabled source once
    python main.py crawl-url URL [S]  ingest one detail page, optionally naming its source
    python main.py serve [PORT]       run the trigger/health HTTP API
    python main.py health             print the health summary as JSON
"""

import json
import logging
import sys
from dataclasses import asdict

import config as config
from dedup import DeduplicationEngine
from models import CrawlStatus
from orchestrator import CrawlInProgressError, CrawlOrchestrator, UnknownSourceError
from rate_limiter import RateLimiter
from repository import JobRepository, StatsRepository, init_db
from sources.linkedin import LinkedInSource
from sources.topcv import TopCVSource

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

SOURCE_CLASSES = [TopCVSource, LinkedInSource]


def build_orchestrator(db_path: str | None = None) -> CrawlOrchestrator:
    """Wire repositories, the shared rate limiter and the enabled sources."""
    db_path = db_path or config.DB_PATH
    init_db(db_path)

    jobs = JobRepository(db_path)
    rate_limiter = RateLimiter(config.RATE_LIMITS)
    dedup = DeduplicationEngine(jobs)

    enabled = [name.lower() for name in config.ENABLED_SOURCES]
    sources = [cls(jobs, dedup, rate_limiter) for cls in SOURCE_CLASSES if cls.name in enabled]
    logger.info(f"Enabled sources: {', '.join(s.name for s in sources) or 'none'}")
    return CrawlOrchestrator(sources, StatsRepository(db_path), rate_limiter)


def run_crawl() -> int:
    orchestrator = build_orchestrator()
    records = orchestrator.run_all()

    print(f"\n{'='*50}")
    print("Crawl Report")
    print(f"{'='*50}")
    for r in records:
        print(f"{r.source:<10} {r.status.value:<8} found={r.jobs_found} created={r.jobs_created} "
              f"updated={r.jobs_updated} skipped={r.jobs_skipped} known={r.duplicates_skipped} "
              f"errors={r.errors} {r.duration_ms}ms")
    print(f"{'='*50}")

    return 1 if records and all(r.status is CrawlStatus.FAILED for r in records) else 0


def run_crawl_url(url: str, source_hint: str | None = None) -> int:
    orchestrator = build_orchestrator()
    try:
        result = orchestrator.crawl_specific_url(url, source_hint)
    except UnknownSourceError as e:
        logger.error(str(e))
        return 2
    print(json.dumps(asdict(result), indent=2))
    return 1 if result.errors else 0


def print_health() -> int:
    print(json.dumps(build_orchestrator().get_health(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "crawl"
    try:
        if command == "crawl":
            sys.exit(run_crawl())
        elif command == "crawl-url" and len(sys.argv) > 2:
            sys.exit(run_crawl_url(sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None))
        elif command == "serve":
            from server import serve

            port = int(sys.argv[2]) if len(sys.argv) > 2 else 8080
            serve(build_orchestrator(), port)
        elif command == "health":
            sys.exit(print_health())
        else:
            print(__doc__)
            sys.exit(2)
    except CrawlInProgressError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Crawl interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Crawler failed: {e}", exc_info=True)
        sys.exit(1)
