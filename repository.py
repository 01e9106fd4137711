"""SQLite-backed stores for ingested postings and crawl run statistics."""

import json
import sqlite3
from dataclasses import fields, replace
from datetime import datetime, timezone
from enum import Enum

from dedup import normalize_text
from models import (
    CrawlRunStats,
    CrawlStatus,
    Currency,
    Education,
    Gender,
    Industry,
    JobLevel,
    JobPosting,
    JobType,
)

_LIST_COLUMNS = {"skills", "tags", "categories"}
_DATE_COLUMNS = {"posted_at", "deadline", "created_at", "updated_at"}
_BOOL_COLUMNS = {"is_verified", "is_branded"}
_ENUM_COLUMNS = {
    "currency": Currency,
    "job_type": JobType,
    "experience_level": JobLevel,
    "education": Education,
    "gender": Gender,
    "industry": Industry,
}
JOB_COLUMNS = [f.name for f in fields(JobPosting) if f.name != "id"]


def init_db(db_path: str = "crawler.db") -> None:
    """Initialize the SQLite database with schema."""
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                external_id TEXT UNIQUE,
                title TEXT NOT NULL,
                company TEXT NOT NULL,
                company_key TEXT NOT NULL DEFAULT '',
                location TEXT DEFAULT '',
                city TEXT,
                salary_min INTEGER DEFAULT 0,
                salary_max INTEGER DEFAULT 0,
                currency TEXT DEFAULT 'VND',
                salary TEXT DEFAULT '',
                description TEXT DEFAULT '',
                requirements TEXT DEFAULT '',
                benefits TEXT DEFAULT '',
                job_type TEXT,
                experience_level TEXT,
                education TEXT,
                gender TEXT,
                industry TEXT,
                skills TEXT DEFAULT '[]',
                posted_at TEXT,
                deadline TEXT,
                content_hash TEXT,
                source TEXT NOT NULL,
                url TEXT,
                logo_url TEXT DEFAULT '',
                tags TEXT DEFAULT '[]',
                categories TEXT DEFAULT '[]',
                is_verified INTEGER DEFAULT 0,
                is_branded INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_jobs_content_hash ON jobs (content_hash);
            CREATE INDEX IF NOT EXISTS idx_jobs_company_created ON jobs (company_key, created_at);

            CREATE TABLE IF NOT EXISTS crawler_stats (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                run_at TEXT NOT NULL,
                jobs_found INTEGER DEFAULT 0,
                jobs_created INTEGER DEFAULT 0,
                jobs_updated INTEGER DEFAULT 0,
                jobs_skipped INTEGER DEFAULT 0,
                duplicates_skipped INTEGER DEFAULT 0,
                errors INTEGER DEFAULT 0,
                duration_ms INTEGER DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'success',
                error_message TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_stats_source_run ON crawler_stats (source, run_at);
        """)
        conn.commit()
    finally:
        conn.close()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(column: str, value):
    if value is None:
        return None
    if column in _LIST_COLUMNS:
        return json.dumps(list(value), ensure_ascii=False)
    if column in _DATE_COLUMNS:
        return value.astimezone(timezone.utc).isoformat()
    if column in _BOOL_COLUMNS:
        return int(bool(value))
    if isinstance(value, Enum):
        return value.value
    return value


def _from_db(column: str, value):
    if column in _LIST_COLUMNS:
        return json.loads(value) if value else []
    if column in _DATE_COLUMNS:
        return datetime.fromisoformat(value) if value else None
    if column in _BOOL_COLUMNS:
        return bool(value)
    if column in _ENUM_COLUMNS and value is not None:
        return _ENUM_COLUMNS[column](value)
    return value


def _row_to_job(row: sqlite3.Row) -> JobPosting:
    return JobPosting(**{key: _from_db(key, row[key]) for key in row.keys() if key != "company_key"})


class JobRepository:
    """Persistence for canonical postings. One connection per operation."""

    def __init__(self, db_path: str = "crawler.db"):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_one(self, query: str, params: tuple) -> JobPosting | None:
        conn = self._connect()
        try:
            row = conn.execute(query, params).fetchone()
        finally:
            conn.close()
        return _row_to_job(row) if row else None

    def get(self, job_id: int) -> JobPosting | None:
        return self._fetch_one("SELECT * FROM jobs WHERE id = ?", (job_id,))

    def find_by_external_id(self, external_id: str) -> JobPosting | None:
        return self._fetch_one("SELECT * FROM jobs WHERE external_id = ?", (external_id,))

    def find_by_content_hash(self, content_hash: str) -> JobPosting | None:
        return self._fetch_one(
            "SELECT * FROM jobs WHERE content_hash = ? ORDER BY id LIMIT 1", (content_hash,)
        )

    def find_recent_by_company(self, company: str, since: datetime, limit: int = 50) -> list[JobPosting]:
        """Postings of ``company`` created after ``since``, newest first.

        Companies match on their normalized name, so "ABC Tech" and "ABC TECH."
        are the same employer.
        """
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE company_key = ? AND created_at > ? "
                "ORDER BY created_at DESC LIMIT ?",
                (normalize_text(company), _to_db("created_at", since), limit),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_job(r) for r in rows]

    def create(self, job: JobPosting) -> JobPosting:
        now = _now()
        job = replace(job, created_at=now, updated_at=now)
        columns = JOB_COLUMNS + ["company_key"]
        values = [_to_db(col, getattr(job, col)) for col in JOB_COLUMNS] + [normalize_text(job.company)]
        conn = self._connect()
        try:
            cursor = conn.execute(
                f"INSERT INTO jobs ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                values,
            )
            conn.commit()
            job_id = cursor.lastrowid
        finally:
            conn.close()
        return replace(job, id=job_id)

    def update(self, job_id: int, changes: dict) -> None:
        """Overwrite the given columns of an existing posting in place."""
        changes = {k: v for k, v in changes.items() if k in JOB_COLUMNS and k != "created_at"}
        if "company" in changes:
            changes["company_key"] = normalize_text(changes["company"])
        changes["updated_at"] = _now()
        assignments = ", ".join(f"{col} = ?" for col in changes)
        values = [_to_db(col, value) for col, value in changes.items()]
        conn = self._connect()
        try:
            conn.execute(f"UPDATE jobs SET {assignments} WHERE id = ?", (*values, job_id))
            conn.commit()
        finally:
            conn.close()

    def count(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0]
        finally:
            conn.close()


class StatsRepository:
    """Append-only store of per-source crawl run records."""

    def __init__(self, db_path: str = "crawler.db"):
        self.db_path = db_path

    def save(self, stats: CrawlRunStats) -> CrawlRunStats:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO crawler_stats (source, run_at, jobs_found, jobs_created, jobs_updated, "
                "jobs_skipped, duplicates_skipped, errors, duration_ms, status, error_message) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    stats.source,
                    stats.run_at.astimezone(timezone.utc).isoformat(),
                    stats.jobs_found,
                    stats.jobs_created,
                    stats.jobs_updated,
                    stats.jobs_skipped,
                    stats.duplicates_skipped,
                    stats.errors,
                    stats.duration_ms,
                    stats.status.value,
                    stats.error_message,
                ),
            )
            conn.commit()
            stats_id = cursor.lastrowid
        finally:
            conn.close()
        return replace(stats, id=stats_id)

    def find_recent(self, since: datetime, limit: int = 500) -> list[CrawlRunStats]:
        """Run records at or after ``since``, newest first."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            rows = conn.execute(
                "SELECT * FROM crawler_stats WHERE run_at >= ? ORDER BY run_at DESC, id DESC LIMIT ?",
                (since.astimezone(timezone.utc).isoformat(), limit),
            ).fetchall()
        finally:
            conn.close()

        records = []
        for row in rows:
            data = dict(row)
            data["status"] = CrawlStatus(data["status"])
            data["run_at"] = datetime.fromisoformat(data["run_at"])
            records.append(CrawlRunStats(**data))
        return records
