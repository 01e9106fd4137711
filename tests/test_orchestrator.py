"""Tests for orchestrator.py — sequential runs, run status and health."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from models import CrawlResult, CrawlRunStats, CrawlStatus
from orchestrator import (
    CrawlInProgressError,
    CrawlOrchestrator,
    UnknownSourceError,
    run_status,
)
from repository import StatsRepository
from sources.base import ListingUnavailableError


def _source(name, result=None, error=None, host=None):
    """Mock strategy with a name, a canned crawl outcome and URL routing."""
    source = MagicMock()
    source.name = name
    if error is not None:
        source.crawl.side_effect = error
    else:
        source.crawl.return_value = result or CrawlResult()
    source.handles_url.side_effect = lambda url: bool(host) and host in url
    source.crawl_specific_url.return_value = CrawlResult(jobs_found=1, jobs_created=1)
    return source


@pytest.fixture
def stats(tmp_db):
    return StatsRepository(tmp_db)


# --- run_status ---


def test_run_status_success():
    assert run_status(CrawlResult(jobs_found=3, jobs_created=3)) is CrawlStatus.SUCCESS
    assert run_status(CrawlResult()) is CrawlStatus.SUCCESS


def test_run_status_partial():
    assert run_status(CrawlResult(jobs_created=1, errors=2)) is CrawlStatus.PARTIAL
    assert run_status(CrawlResult(jobs_updated=1, errors=1)) is CrawlStatus.PARTIAL


def test_run_status_all_errors_is_failed():
    assert run_status(CrawlResult(jobs_found=2, errors=2)) is CrawlStatus.FAILED
    assert run_status(CrawlResult(jobs_skipped=3, errors=1)) is CrawlStatus.FAILED


# --- run_all ---


def test_failing_strategy_does_not_stop_the_next(stats, rate_limiter):
    a = _source("topcv", error=ListingUnavailableError("TopCV listing page unavailable: 503"))
    b = _source("linkedin", result=CrawlResult(jobs_found=2, jobs_created=2))
    orchestrator = CrawlOrchestrator([a, b], stats, rate_limiter)

    records = orchestrator.run_all()

    assert [r.source for r in records] == ["topcv", "linkedin"]
    assert records[0].status is CrawlStatus.FAILED
    assert records[0].errors == 1
    assert "503" in records[0].error_message
    assert records[1].status is CrawlStatus.SUCCESS
    assert records[1].jobs_created == 2
    b.crawl.assert_called_once()


def test_stats_persisted_in_registration_order(stats, rate_limiter):
    sources = [
        _source("topcv", result=CrawlResult(jobs_found=4, jobs_created=2, errors=1)),
        _source("linkedin", error=RuntimeError("browser crashed")),
    ]
    CrawlOrchestrator(sources, stats, rate_limiter).run_all()

    saved = stats.find_recent(datetime.now(timezone.utc) - timedelta(hours=1))
    by_id = sorted(saved, key=lambda r: r.id)
    assert [r.source for r in by_id] == ["topcv", "linkedin"]
    assert by_id[0].status is CrawlStatus.PARTIAL
    assert by_id[1].status is CrawlStatus.FAILED
    assert by_id[1].error_message == "browser crashed"


def test_stats_save_failure_does_not_abort_run(rate_limiter):
    broken = MagicMock()
    broken.save.side_effect = RuntimeError("disk full")
    a = _source("topcv")
    b = _source("linkedin")

    records = CrawlOrchestrator([a, b], broken, rate_limiter).run_all()

    assert len(records) == 2
    assert broken.save.call_count == 2
    b.crawl.assert_called_once()


def test_duration_recorded(stats, rate_limiter):
    records = CrawlOrchestrator([_source("topcv")], stats, rate_limiter).run_all()
    assert records[0].duration_ms >= 0
    assert records[0].id is not None


def test_concurrent_run_rejected(stats, rate_limiter):
    started = threading.Event()
    release = threading.Event()

    def slow_crawl():
        started.set()
        release.wait(5)
        return CrawlResult()

    slow = _source("topcv")
    slow.crawl.side_effect = slow_crawl
    orchestrator = CrawlOrchestrator([slow], stats, rate_limiter)

    thread = threading.Thread(target=orchestrator.run_all)
    thread.start()
    try:
        assert started.wait(5)
        assert orchestrator.is_running
        with pytest.raises(CrawlInProgressError):
            orchestrator.run_all()
    finally:
        release.set()
        thread.join(5)

    assert not orchestrator.is_running


# --- crawl_specific_url ---


def test_crawl_specific_url_routes_by_host(stats, rate_limiter):
    topcv = _source("topcv", host="topcv.vn")
    linkedin = _source("linkedin", host="linkedin.com")
    orchestrator = CrawlOrchestrator([topcv, linkedin], stats, rate_limiter)

    result = orchestrator.crawl_specific_url("https://www.linkedin.com/jobs/view/4001122334/")

    assert result.jobs_created == 1
    linkedin.crawl_specific_url.assert_called_once_with("https://www.linkedin.com/jobs/view/4001122334/")
    topcv.crawl_specific_url.assert_not_called()


def test_crawl_specific_url_with_source_hint(stats, rate_limiter):
    topcv = _source("topcv", host="topcv.vn")
    orchestrator = CrawlOrchestrator([topcv], stats, rate_limiter)

    orchestrator.crawl_specific_url("https://mirror.example.com/job/1", source_hint="TopCV")
    topcv.crawl_specific_url.assert_called_once()


def test_crawl_specific_url_unknown(stats, rate_limiter):
    orchestrator = CrawlOrchestrator([_source("topcv", host="topcv.vn")], stats, rate_limiter)

    with pytest.raises(UnknownSourceError):
        orchestrator.crawl_specific_url("https://www.vietnamworks.com/job/1")
    with pytest.raises(UnknownSourceError):
        orchestrator.crawl_specific_url("https://www.topcv.vn/x/1.html", source_hint="vietnamworks")


def test_crawl_specific_url_rejected_while_crawl_running(stats, rate_limiter):
    started = threading.Event()
    release = threading.Event()

    def slow_crawl():
        started.set()
        release.wait(5)
        return CrawlResult()

    topcv = _source("topcv", host="topcv.vn")
    topcv.crawl.side_effect = slow_crawl
    orchestrator = CrawlOrchestrator([topcv], stats, rate_limiter)

    thread = threading.Thread(target=orchestrator.run_all)
    thread.start()
    try:
        assert started.wait(5)
        with pytest.raises(CrawlInProgressError):
            orchestrator.crawl_specific_url("https://www.topcv.vn/viec-lam/a/1.html")
    finally:
        release.set()
        thread.join(5)

    topcv.crawl_specific_url.assert_not_called()


def test_crawl_specific_url_releases_lock(stats, rate_limiter):
    topcv = _source("topcv", host="topcv.vn")
    topcv.crawl_specific_url.side_effect = RuntimeError("boom")
    orchestrator = CrawlOrchestrator([topcv], stats, rate_limiter)

    with pytest.raises(RuntimeError):
        orchestrator.crawl_specific_url("https://www.topcv.vn/viec-lam/a/1.html")

    assert not orchestrator.is_running
    assert len(orchestrator.run_all()) == 1


# --- get_health ---


def _record(stats, source, status, hours_ago, **counts):
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    return stats.save(CrawlRunStats(source=source, status=status, run_at=now - timedelta(hours=hours_ago), **counts))


@freeze_time("2026-10-19T12:00:00Z")
def test_health_healthy(stats, rate_limiter):
    _record(stats, "topcv", CrawlStatus.SUCCESS, 3, jobs_created=5, duration_ms=1000)
    _record(stats, "topcv", CrawlStatus.SUCCESS, 1, jobs_created=2, duration_ms=3000)
    _record(stats, "linkedin", CrawlStatus.SUCCESS, 1, jobs_created=1, duration_ms=500)
    orchestrator = CrawlOrchestrator([_source("topcv"), _source("linkedin")], stats, rate_limiter)

    health = orchestrator.get_health()

    assert health["status"] == "healthy"
    topcv = health["sources"]["topcv"]
    assert topcv["last_status"] == "success"
    assert topcv["last_run_at"] == "2026-10-19T11:00:00+00:00"
    assert topcv["total_jobs_created"] == 7
    assert topcv["avg_duration_ms"] == 2000
    assert topcv["runs"] == 2
    assert topcv["rate_limiter"]["consecutive_errors"] == 0


@freeze_time("2026-10-19T12:00:00Z")
def test_health_unhealthy_when_last_run_failed(stats, rate_limiter):
    _record(stats, "topcv", CrawlStatus.SUCCESS, 5)
    _record(stats, "topcv", CrawlStatus.FAILED, 1, errors=1)
    orchestrator = CrawlOrchestrator([_source("topcv")], stats, rate_limiter)

    health = orchestrator.get_health()
    assert health["status"] == "unhealthy"
    assert health["sources"]["topcv"]["last_status"] == "failed"


@freeze_time("2026-10-19T12:00:00Z")
def test_health_recovers_when_latest_run_succeeds(stats, rate_limiter):
    _record(stats, "topcv", CrawlStatus.FAILED, 5, errors=1)
    _record(stats, "topcv", CrawlStatus.SUCCESS, 1)
    orchestrator = CrawlOrchestrator([_source("topcv")], stats, rate_limiter)

    assert orchestrator.get_health()["status"] == "healthy"


@freeze_time("2026-10-19T12:00:00Z")
def test_health_degraded_when_partial(stats, rate_limiter):
    _record(stats, "topcv", CrawlStatus.PARTIAL, 1, jobs_created=3, errors=2)
    orchestrator = CrawlOrchestrator([_source("topcv")], stats, rate_limiter)

    assert orchestrator.get_health()["status"] == "degraded"


@freeze_time("2026-10-19T12:00:00Z")
def test_health_degraded_when_errors_exceed_threshold(stats, rate_limiter):
    """Twelve errors across runs that all succeeded exceed the threshold of 10."""
    for hours in (2, 4, 6):
        _record(stats, "topcv", CrawlStatus.SUCCESS, hours, errors=4)
    orchestrator = CrawlOrchestrator([_source("topcv")], stats, rate_limiter)

    health = orchestrator.get_health()
    assert health["status"] == "degraded"
    assert health["total_errors"] == 12


@freeze_time("2026-10-19T12:00:00Z")
def test_health_ignores_runs_outside_window(stats, rate_limiter):
    _record(stats, "topcv", CrawlStatus.FAILED, 30, errors=50)
    orchestrator = CrawlOrchestrator([_source("topcv")], stats, rate_limiter)

    health = orchestrator.get_health()
    assert health["status"] == "healthy"
    assert health["sources"]["topcv"]["runs"] == 0


@freeze_time("2026-10-19T12:00:00Z")
def test_health_lists_sources_that_never_ran(stats, rate_limiter):
    orchestrator = CrawlOrchestrator([_source("topcv"), _source("linkedin")], stats, rate_limiter)

    health = orchestrator.get_health()
    assert health["sources"]["linkedin"] == {
        "last_run_at": None,
        "last_status": None,
        "total_jobs_created": 0,
        "total_errors": 0,
        "avg_duration_ms": 0,
        "runs": 0,
        "rate_limiter": {"current_delay": 5000, "consecutive_errors": 0, "requests_in_window": 0},
    }
    assert health["running"] is False
