"""Configuration derived from settings.json plus environment overrides."""

import os

from settings import get_settings


def _load():
    """Load all config values from the current settings."""
    global DB_PATH, ENABLED_SOURCES, MAX_PAGES, REQUEST_TIMEOUT, USER_AGENT
    global REFRESH_EXISTING, RATE_LIMITS
    global FUZZY_WINDOW_DAYS, FUZZY_CANDIDATE_LIMIT, SIMILARITY_THRESHOLD
    global HEALTH_WINDOW_HOURS, HEALTH_ERROR_THRESHOLD
    global TOPCV_LISTING_URL, LINKEDIN_KEYWORDS, LINKEDIN_LOCATION
    global API_TOKEN

    _s = get_settings()
    DB_PATH = os.environ.get("CRAWLER_DB_PATH") or _s.get("db_path", "crawler.db")
    ENABLED_SOURCES = _s.get("enabled_sources", ["topcv", "linkedin"])
    MAX_PAGES = _s.get("max_pages", 5)
    REQUEST_TIMEOUT = _s.get("request_timeout", 30)
    USER_AGENT = _s.get("user_agent", DEFAULT_USER_AGENT)
    REFRESH_EXISTING = _s.get("refresh_existing", False)
    RATE_LIMITS = _s.get("rate_limits", {})

    dedup = _s.get("dedup", {})
    FUZZY_WINDOW_DAYS = dedup.get("fuzzy_window_days", 30)
    FUZZY_CANDIDATE_LIMIT = dedup.get("fuzzy_candidate_limit", 50)
    SIMILARITY_THRESHOLD = dedup.get("similarity_threshold", 0.9)

    health = _s.get("health", {})
    HEALTH_WINDOW_HOURS = health.get("window_hours", 24)
    HEALTH_ERROR_THRESHOLD = health.get("error_threshold", 10)

    TOPCV_LISTING_URL = _s.get("topcv", {}).get("listing_url", "https://www.topcv.vn/viec-lam-it")
    LINKEDIN_KEYWORDS = _s.get("linkedin", {}).get("keywords", "software engineer")
    LINKEDIN_LOCATION = _s.get("linkedin", {}).get("location", "Vietnam")

    API_TOKEN = os.environ.get("CRAWLER_API_TOKEN", "")


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Initial load
_load()


def reload():
    """Re-read settings.json and refresh all module-level constants."""
    _load()
