"""Runs every registered source in turn, records one stats row per run and
summarizes recent runs into a health report."""

import logging
import threading
import time
from datetime import timedelta

import config as config
from models import CrawlResult, CrawlRunStats, CrawlStatus, utcnow
from rate_limiter import RateLimiter
from repository import StatsRepository
from sources.base import BaseSource

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


class CrawlInProgressError(Exception):
    """A full crawl is already running in this process."""


class UnknownSourceError(Exception):
    """No registered source matches the requested name or URL."""


def run_status(result: CrawlResult) -> CrawlStatus:
    """Terminal status of a strategy run that completed without raising."""
    if result.errors == 0:
        return CrawlStatus.SUCCESS
    if result.succeeded > 0:
        return CrawlStatus.PARTIAL
    return CrawlStatus.FAILED


class CrawlOrchestrator:
    def __init__(self, sources: list[BaseSource], stats: StatsRepository, rate_limiter: RateLimiter):
        self.sources = list(sources)
        self.stats = stats
        self.rate_limiter = rate_limiter
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_all(self) -> list[CrawlRunStats]:
        """Crawl every source sequentially, in registration order.

        A source that raises is recorded as failed and the run moves on to
        the next one. Raises CrawlInProgressError if another run holds the lock.
        """
        if not self._lock.acquire(blocking=False):
            raise CrawlInProgressError("A crawl is already in progress")

        try:
            logger.info(f"=== Crawl started: {len(self.sources)} sources ===")
            records = [self._run_source(source) for source in self.sources]
            logger.info("=== Crawl complete ===")
            return records
        finally:
            self._lock.release()

    def _run_source(self, source: BaseSource) -> CrawlRunStats:
        logger.info(f"[{source.name}] Run status: {CrawlStatus.RUNNING.value}")
        started = time.monotonic()
        error_message = None
        try:
            result = source.crawl()
            status = run_status(result)
        except Exception as e:
            logger.error(f"[{source.name}] Crawl failed: {e}", exc_info=True)
            result = CrawlResult(errors=1)
            status = CrawlStatus.FAILED
            error_message = str(e)
        duration_ms = int((time.monotonic() - started) * 1000)

        record = CrawlRunStats(
            source=source.name,
            status=status,
            jobs_found=result.jobs_found,
            jobs_created=result.jobs_created,
            jobs_updated=result.jobs_updated,
            jobs_skipped=result.jobs_skipped,
            duplicates_skipped=result.duplicates_skipped,
            errors=result.errors,
            duration_ms=duration_ms,
            error_message=error_message,
        )
        logger.info(f"[{source.name}] Run status: {status.value} in {duration_ms}ms")

        try:
            record = self.stats.save(record)
        except Exception as e:
            logger.error(f"[{source.name}] Failed to save crawl stats: {e}", exc_info=True)
        return record

    def find_source(self, url: str, source_hint: str | None = None) -> BaseSource:
        if source_hint:
            for source in self.sources:
                if source.name == source_hint.lower():
                    return source
            raise UnknownSourceError(f"Unknown source: {source_hint}")

        for source in self.sources:
            if source.handles_url(url):
                return source
        raise UnknownSourceError(f"No source handles {url}")

    def crawl_specific_url(self, url: str, source_hint: str | None = None) -> CrawlResult:
        """Ingest one detail page through the source that owns it.

        Holds the same lock as run_all(); raises CrawlInProgressError while a
        crawl is running.
        """
        source = self.find_source(url, source_hint)
        if not self._lock.acquire(blocking=False):
            raise CrawlInProgressError("A crawl is already in progress")

        try:
            logger.info(f"[{source.name}] Test crawl of {url}")
            return source.crawl_specific_url(url)
        finally:
            self._lock.release()

    def get_health(self) -> dict:
        now = utcnow()
        records = self.stats.find_recent(now - timedelta(hours=config.HEALTH_WINDOW_HOURS))

        by_source: dict[str, list[CrawlRunStats]] = {}
        for record in records:
            by_source.setdefault(record.source, []).append(record)

        sources = {}
        for source in self.sources:
            runs = by_source.get(source.name, [])
            last = runs[0] if runs else None
            sources[source.name] = {
                "last_run_at": last.run_at.isoformat() if last else None,
                "last_status": last.status.value if last else None,
                "total_jobs_created": sum(r.jobs_created for r in runs),
                "total_errors": sum(r.errors for r in runs),
                "avg_duration_ms": round(sum(r.duration_ms for r in runs) / len(runs)) if runs else 0,
                "runs": len(runs),
                "rate_limiter": self.rate_limiter.get_status(source.name),
            }

        statuses = [s["last_status"] for s in sources.values()]
        total_errors = sum(s["total_errors"] for s in sources.values())
        if CrawlStatus.FAILED.value in statuses:
            overall = UNHEALTHY
        elif CrawlStatus.PARTIAL.value in statuses or total_errors > config.HEALTH_ERROR_THRESHOLD:
            overall = DEGRADED
        else:
            overall = HEALTHY

        return {
            "status": overall,
            "checked_at": now.isoformat(),
            "running": self.is_running,
            "window_hours": config.HEALTH_WINDOW_HOURS,
            "total_errors": total_errors,
            "sources": sources,
        }
