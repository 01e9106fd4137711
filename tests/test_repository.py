"""Tests for repository.py — SQLite job and stats stores."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from models import CrawlRunStats, CrawlStatus, Currency, Gender, JobLevel, JobType
from repository import JobRepository, StatsRepository, init_db


def test_init_db_creates_tables(tmp_db):
    conn = sqlite3.connect(tmp_db)
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert {"jobs", "crawler_stats"} <= tables


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)


def test_create_and_get_round_trip(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    posting = make_posting(
        job_type=JobType.PART_TIME,
        experience_level=JobLevel.SENIOR,
        currency=Currency.USD,
        gender=Gender.FEMALE,
        tags=["Python", "Đà Nẵng"],
        is_verified=True,
        deadline=datetime(2026, 11, 15, tzinfo=timezone.utc),
    )
    created = jobs.create(posting)
    assert created.id is not None
    assert created.created_at is not None

    loaded = jobs.get(created.id)
    assert loaded.title == posting.title
    assert loaded.job_type is JobType.PART_TIME
    assert loaded.experience_level is JobLevel.SENIOR
    assert loaded.currency is Currency.USD
    assert loaded.gender is Gender.FEMALE
    assert loaded.skills == ["Python", "Django"]
    assert loaded.tags == ["Python", "Đà Nẵng"]
    assert loaded.is_verified is True
    assert loaded.is_branded is False
    assert loaded.deadline == datetime(2026, 11, 15, tzinfo=timezone.utc)
    assert loaded.posted_at is None


def test_get_missing_returns_none(tmp_db):
    assert JobRepository(tmp_db).get(999) is None


def test_find_by_external_id_and_hash(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    created = jobs.create(make_posting(external_id="topcv-5", content_hash="h5"))

    assert jobs.find_by_external_id("topcv-5").id == created.id
    assert jobs.find_by_content_hash("h5").id == created.id
    assert jobs.find_by_external_id("topcv-6") is None
    assert jobs.find_by_content_hash("h6") is None


def test_external_id_is_unique(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    jobs.create(make_posting(external_id="topcv-5"))
    with pytest.raises(sqlite3.IntegrityError):
        jobs.create(make_posting(external_id="topcv-5", title="Another"))


def test_update_changes_fields_in_place(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    with freeze_time("2026-10-01T00:00:00Z"):
        created = jobs.create(make_posting())

    with freeze_time("2026-10-19T00:00:00Z"):
        jobs.update(created.id, {"salary_min": 20_000_000, "skills": ["Go"], "created_at": None, "bogus": 1})

    updated = jobs.get(created.id)
    assert updated.salary_min == 20_000_000
    assert updated.skills == ["Go"]
    assert updated.created_at == datetime(2026, 10, 1, tzinfo=timezone.utc)
    assert updated.updated_at == datetime(2026, 10, 19, tzinfo=timezone.utc)
    assert jobs.count() == 1


def test_find_recent_by_company(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    with freeze_time("2026-08-01T00:00:00Z"):
        jobs.create(make_posting(title="Old", external_id=None))
    with freeze_time("2026-10-10T00:00:00Z"):
        jobs.create(make_posting(title="Newer", external_id=None))
    with freeze_time("2026-10-18T00:00:00Z"):
        jobs.create(make_posting(title="Newest", external_id=None))
        jobs.create(make_posting(title="Elsewhere", company="XYZ", external_id=None))

    since = datetime(2026, 9, 19, tzinfo=timezone.utc)
    recent = jobs.find_recent_by_company("ABC Tech", since)
    assert [j.title for j in recent] == ["Newest", "Newer"]
    assert [j.title for j in jobs.find_recent_by_company("ABC Tech", since, limit=1)] == ["Newest"]


def test_find_recent_by_company_matches_normalized_name(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    jobs.create(make_posting(title="Tester", company="ABC Tech", external_id=None))

    assert [j.title for j in jobs.find_recent_by_company("ABC TECH.", datetime(2026, 1, 1, tzinfo=timezone.utc))] \
        == ["Tester"]


def test_update_renamed_company_follows_new_name(tmp_db, make_posting):
    jobs = JobRepository(tmp_db)
    stored = jobs.create(make_posting(external_id=None))
    jobs.update(stored.id, {"company": "ABC Technology"})

    since = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert jobs.find_recent_by_company("ABC Tech", since) == []
    assert len(jobs.find_recent_by_company("abc technology", since)) == 1
    assert jobs.get(stored.id).company == "ABC Technology"


def test_stats_save_and_find_recent(tmp_db):
    stats = StatsRepository(tmp_db)
    base = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    old = stats.save(CrawlRunStats(source="topcv", status=CrawlStatus.SUCCESS, run_at=base - timedelta(days=2)))
    first = stats.save(CrawlRunStats(source="topcv", status=CrawlStatus.PARTIAL, errors=2,
                                     run_at=base - timedelta(hours=2)))
    second = stats.save(CrawlRunStats(source="linkedin", status=CrawlStatus.FAILED, errors=1,
                                      error_message="listing down", run_at=base - timedelta(hours=1)))
    assert old.id and first.id and second.id

    recent = stats.find_recent(base - timedelta(hours=24))
    assert [r.id for r in recent] == [second.id, first.id]
    assert recent[0].status is CrawlStatus.FAILED
    assert recent[0].error_message == "listing down"
    assert recent[0].run_at == base - timedelta(hours=1)
    assert recent[1].errors == 2


def test_stats_find_recent_limit(tmp_db):
    stats = StatsRepository(tmp_db)
    now = datetime(2026, 10, 19, tzinfo=timezone.utc)
    for i in range(5):
        stats.save(CrawlRunStats(source="topcv", status=CrawlStatus.SUCCESS, run_at=now - timedelta(minutes=i)))
    assert len(stats.find_recent(now - timedelta(hours=1), limit=3)) == 3
