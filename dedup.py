import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone

from rapidfuzz.distance import Levenshtein

import config as config
from models import DuplicateCheckResult, JobPosting, MatchType

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    if not text:
        return ""
    text = _PUNCTUATION_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def generate_content_hash(title: str, company: str, location: str) -> str:
    """Deterministic fingerprint of the normalized title|company|location triple."""
    key = f"{normalize_text(title)}|{normalize_text(company)}|{normalize_text(location)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def calculate_similarity(a: str, b: str) -> float:
    """1 - levenshtein(a, b) / max(len(a), len(b)) over normalized strings."""
    s1 = normalize_text(a)
    s2 = normalize_text(b)
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return 1 - Levenshtein.distance(s1, s2) / max(len(s1), len(s2))


class DeduplicationEngine:
    """Decides whether a scraped posting is already stored, cheapest check first:
    external id, then content hash, then fuzzy title among recent postings of
    the same company.
    """

    def __init__(self, jobs, window_days: int | None = None, candidate_limit: int | None = None,
                 threshold: float | None = None):
        self.jobs = jobs
        self.window_days = window_days if window_days is not None else config.FUZZY_WINDOW_DAYS
        self.candidate_limit = candidate_limit if candidate_limit is not None else config.FUZZY_CANDIDATE_LIMIT
        self.threshold = threshold if threshold is not None else config.SIMILARITY_THRESHOLD

    def check_duplicate(
        self,
        title: str,
        company: str,
        location: str,
        external_id: str | None = None,
    ) -> DuplicateCheckResult:
        if external_id:
            existing = self.jobs.find_by_external_id(external_id)
            if existing:
                return DuplicateCheckResult(True, existing.id, MatchType.EXTERNAL_ID)

        existing = self.jobs.find_by_content_hash(generate_content_hash(title, company, location))
        if existing:
            return DuplicateCheckResult(True, existing.id, MatchType.EXACT_HASH)

        since = datetime.now(timezone.utc) - timedelta(days=self.window_days)
        for candidate in self.jobs.find_recent_by_company(company, since, self.candidate_limit):
            similarity = calculate_similarity(title, candidate.title)
            if similarity > self.threshold:
                logger.debug(f"Fuzzy match '{title}' ~ '{candidate.title}' ({similarity:.2f})")
                return DuplicateCheckResult(True, candidate.id, MatchType.FUZZY_TITLE, similarity)

        return DuplicateCheckResult(False)

    def find_existing_job(self, external_id: str | None = None, content_hash: str | None = None) -> JobPosting | None:
        """Exact lookup by external id, then content hash."""
        if external_id:
            job = self.jobs.find_by_external_id(external_id)
            if job:
                return job
        if content_hash:
            return self.jobs.find_by_content_hash(content_hash)
        return None
