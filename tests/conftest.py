"""Shared test fixtures for the crawler test suite."""

import json
import os

import pytest

from models import JobPosting
from rate_limiter import RateLimiter

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


def _load_sample_settings():
    with open(os.path.join(FIXTURES_DIR, "sample_settings.json"), encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Autouse fixture that injects known test settings for every test.

    Resets settings._settings so get_settings() returns the test data,
    clears the environment overrides and calls config.reload() to refresh
    all config globals.
    """
    import config
    import settings

    data = _load_sample_settings()
    monkeypatch.setattr(settings, "_settings", data)
    monkeypatch.delenv("CRAWLER_DB_PATH", raising=False)
    monkeypatch.delenv("CRAWLER_API_TOKEN", raising=False)
    monkeypatch.delenv("CRAWLER_SETTINGS_PATH", raising=False)
    config.reload()
    yield data


class FakeClock:
    """Millisecond clock whose sleep() just advances time."""

    def __init__(self, start: float = 0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, ms):
        self.sleeps.append(ms)
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(clock):
    """RateLimiter driven by a fake clock so tests never block."""
    return RateLimiter(clock=clock, sleep=clock.sleep)


@pytest.fixture
def make_posting():
    """Factory fixture for creating JobPosting instances with defaults."""

    def _make(**overrides):
        defaults = {
            "title": "Backend Developer",
            "company": "ABC Tech",
            "url": "https://www.topcv.vn/viec-lam/backend-developer/1000001.html",
            "source": "topcv",
            "external_id": "topcv-1000001",
            "location": "Hà Nội",
            "city": "Hà Nội",
            "salary_min": 15_000_000,
            "salary_max": 30_000_000,
            "skills": ["Python", "Django"],
        }
        defaults.update(overrides)
        return JobPosting(**defaults)

    return _make


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database with the crawler schema."""
    from repository import init_db

    db_path = str(tmp_path / "test_crawler.db")
    init_db(db_path)
    return db_path


@pytest.fixture
def fixture_path():
    """Return the path to the fixtures directory."""
    return FIXTURES_DIR


def load_fixture(filename):
    """Load a fixture file by name."""
    path = os.path.join(FIXTURES_DIR, filename)
    with open(path, encoding="utf-8") as f:
        if filename.endswith(".json"):
            return json.load(f)
        return f.read()
