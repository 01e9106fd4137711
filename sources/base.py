import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from urllib.parse import urlparse

import requests

import config as config
from dedup import DeduplicationEngine, generate_content_hash
from models import CrawlResult, JobLevel, JobPosting, MatchType
from normalizer import (
    extract_skills,
    normalize_city,
    normalize_education,
    normalize_experience_level,
    normalize_gender,
    normalize_industry,
    normalize_job_type,
    parse_date,
    parse_salary,
    sanitize_html,
)
from rate_limiter import RateLimiter
from repository import JobRepository

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"
DUPLICATE = "duplicate"


class ListingUnavailableError(Exception):
    """The first listing page of a source could not be fetched or parsed."""


@dataclass
class ListingItem:
    """One entry on a listing page; card fields are hints for the detail parser."""

    url: str
    title: str = ""
    company: str = ""
    location: str = ""
    salary: str = ""


@dataclass
class ListingPage:
    items: list[ListingItem] = field(default_factory=list)
    total_pages: int = 1


class BaseSource(ABC):
    """Abstract base class for all job board scraping strategies.

    Subclasses describe how to read one board: where its listing pages live,
    how to pull item links off a listing page, how to derive a stable id from
    an item URL and how to read raw fields off a detail page. The crawl loop,
    normalization, deduplication and persistence are shared.
    """

    name: str = "base"
    display_name: str = "Base"
    hosts: tuple[str, ...] = ()

    def __init__(
        self,
        jobs: JobRepository,
        dedup: DeduplicationEngine,
        rate_limiter: RateLimiter,
        max_pages: int | None = None,
        refresh_existing: bool | None = None,
        timeout: float | None = None,
    ):
        self.jobs = jobs
        self.dedup = dedup
        self.rate_limiter = rate_limiter
        self.max_pages = max_pages if max_pages is not None else config.MAX_PAGES
        self.refresh_existing = refresh_existing if refresh_existing is not None else config.REFRESH_EXISTING
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT

    @abstractmethod
    def listing_url(self, page: int) -> str:
        ...

    @abstractmethod
    def parse_listing(self, html: str, page: int) -> ListingPage:
        ...

    @abstractmethod
    def extract_external_id(self, url: str) -> str | None:
        ...

    @abstractmethod
    def parse_detail(self, html: str, url: str) -> dict:
        """Raw field strings keyed by title, company, location, salary, description, ..."""
        ...

    def handles_url(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.hosts)

    # --- Crawl loop ---

    def open_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            "User-Agent": config.USER_AGENT,
            "Accept-Language": "vi-VN,vi;q=0.9,en;q=0.8",
        })
        return session

    def fetch(self, session: requests.Session, url: str) -> str:
        """Rate-limited GET. Feeds the outcome back into the limiter's backoff."""
        self.rate_limiter.throttle(self.name)
        try:
            resp = session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException:
            self.rate_limiter.record_error(self.name)
            raise
        self.rate_limiter.record_success(self.name)
        return resp.text

    def crawl(self, page_limit: int | None = None) -> CrawlResult:
        """Walk the listing pages and ingest every item found on them."""
        result = CrawlResult()
        seen_urls = set()
        logger.info(f"[{self.name}] Crawling {self.display_name}...")

        with self.open_session() as session:
            try:
                first = self.parse_listing(self.fetch(session, self.listing_url(1)), 1)
            except Exception as e:
                raise ListingUnavailableError(f"{self.display_name} listing page unavailable: {e}") from e

            last_page = self._last_page(first.total_pages, page_limit)
            logger.info(f"[{self.name}] {first.total_pages} listing pages, crawling {last_page}")

            for page_no in range(1, last_page + 1):
                page = first if page_no == 1 else self._fetch_listing(session, page_no, result)
                if page is None:
                    continue
                if not page.items:
                    logger.info(f"[{self.name}] Page {page_no} is empty, stopping")
                    break

                for item in page.items:
                    if item.url in seen_urls:
                        continue
                    seen_urls.add(item.url)
                    result.jobs_found += 1
                    self._process_item(session, item, result)

        logger.info(
            f"[{self.name}] Found {result.jobs_found}: {result.jobs_created} created, "
            f"{result.jobs_updated} updated, {result.jobs_skipped} skipped, "
            f"{result.duplicates_skipped} already known, {result.errors} errors"
        )
        return result

    def crawl_specific_url(self, url: str) -> CrawlResult:
        """Ingest a single detail page, always refetching it."""
        result = CrawlResult(jobs_found=1)
        with self.open_session() as session:
            self._process_item(session, ListingItem(url=url), result, force=True)
        return result

    def _last_page(self, total_pages: int, page_limit: int | None) -> int:
        limit = page_limit or self.max_pages
        total = max(total_pages, 1)
        return min(total, limit) if limit else total

    def _fetch_listing(self, session: requests.Session, page_no: int, result: CrawlResult) -> ListingPage | None:
        try:
            return self.parse_listing(self.fetch(session, self.listing_url(page_no)), page_no)
        except Exception as e:
            logger.warning(f"[{self.name}] Listing page {page_no} failed: {e}")
            result.errors += 1
            return None

    def _process_item(self, session: requests.Session, item: ListingItem, result: CrawlResult,
                      force: bool = False) -> None:
        try:
            outcome = self._ingest(session, item, force)
        except requests.RequestException as e:
            logger.warning(f"[{self.name}] Failed to fetch {item.url}: {e}")
            result.errors += 1
            return
        except Exception as e:
            logger.error(f"[{self.name}] Failed to process {item.url}: {e}", exc_info=True)
            result.errors += 1
            return

        if outcome == CREATED:
            result.jobs_created += 1
        elif outcome == UPDATED:
            result.jobs_updated += 1
        elif outcome == DUPLICATE:
            result.duplicates_skipped += 1
        else:
            result.jobs_skipped += 1

    def _ingest(self, session: requests.Session, item: ListingItem, force: bool) -> str:
        external_id = self.extract_external_id(item.url)
        if external_id and not (force or self.refresh_existing) and self.jobs.find_by_external_id(external_id):
            logger.debug(f"[{self.name}] {external_id} already ingested, not refetching")
            return DUPLICATE

        raw = self.parse_detail(self.fetch(session, item.url), item.url)
        for key in ("title", "company", "location", "salary"):
            if not raw.get(key):
                raw[key] = getattr(item, key)

        if not raw.get("title") or not raw.get("company"):
            logger.info(f"[{self.name}] Skipping {item.url}: no title or company found")
            return SKIPPED

        return self.save(self.normalize(raw, item.url, external_id))

    # --- Normalize and persist ---

    def normalize(self, raw: dict, url: str, external_id: str | None) -> JobPosting:
        title = raw["title"].strip()
        company = raw["company"].strip()
        location = (raw.get("location") or "").strip()
        salary = parse_salary(raw.get("salary"))
        description = sanitize_html(raw.get("description"))
        requirements = sanitize_html(raw.get("requirements"))
        benefits = sanitize_html(raw.get("benefits"))

        level = normalize_experience_level(raw.get("experience"))
        if level is JobLevel.NOT_SPECIFIED:
            level = normalize_experience_level(raw.get("level"))
        if level is JobLevel.NOT_SPECIFIED:
            level = normalize_experience_level(title)

        skills_text = " ".join(filter(None, [description, requirements, raw.get("skills_text")]))

        return JobPosting(
            title=title,
            company=company,
            url=url,
            source=self.name,
            external_id=external_id,
            location=location,
            city=normalize_city(location),
            salary_min=salary.min,
            salary_max=salary.max,
            currency=salary.currency,
            salary=(raw.get("salary") or "").strip(),
            description=description,
            requirements=requirements,
            benefits=benefits,
            job_type=normalize_job_type(raw.get("job_type")),
            experience_level=level,
            education=normalize_education(raw.get("education")),
            gender=normalize_gender(raw.get("gender")),
            industry=normalize_industry(raw.get("industry")),
            skills=extract_skills(skills_text, raw.get("tags")),
            posted_at=parse_date(raw.get("posted_at")),
            deadline=parse_date(raw.get("deadline")),
            content_hash=generate_content_hash(title, company, location),
            logo_url=raw.get("logo_url") or "",
            tags=list(raw.get("tags") or []),
            categories=list(raw.get("categories") or []),
            is_verified=bool(raw.get("is_verified")),
            is_branded=bool(raw.get("is_branded")),
        )

    def save(self, posting: JobPosting) -> str:
        """Update the matching stored posting in place, or create a new one."""
        check = self.dedup.check_duplicate(posting.title, posting.company, posting.location, posting.external_id)
        if check.is_duplicate:
            changes = posting.update_fields()
            if check.match_type is not MatchType.EXTERNAL_ID:
                # external_id is unique per row; only an external-id match may write it
                changes.pop("external_id")
            self.jobs.update(check.existing_id, changes)
            logger.info(f"[{self.name}] Updated job: {posting.title} ({check.match_type.value})")
            return UPDATED

        self.jobs.create(posting)
        logger.info(f"[{self.name}] Imported job: {posting.title} @ {posting.company}")
        return CREATED
