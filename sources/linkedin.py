"""LinkedIn job search via the public (logged-out) pages.

The first page is the public search page, which carries the total result
count; later pages come from the guest pagination endpoint, 25 cards each.
"""

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlencode, urlparse

from bs4 import BeautifulSoup

import config as config
from extraction import (
    find_job_posting,
    first_non_empty,
    job_posting_fields,
    labeled_value,
    select_attr,
    select_html,
    select_text,
)
from sources.base import BaseSource, ListingItem, ListingPage

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.linkedin.com/jobs/search"
PAGINATION_URL = "https://www.linkedin.com/jobs-guest/jobs/api/seeMoreJobPostings/search"
PAGE_SIZE = 25

_ID_RE = re.compile(r"(\d{6,})/?$")
_URN_RE = re.compile(r"jobPosting:(\d+)")


class LinkedInSource(BaseSource):
    name = "linkedin"
    display_name = "LinkedIn"
    hosts = ("linkedin.com",)

    def listing_url(self, page: int) -> str:
        params = {"keywords": config.LINKEDIN_KEYWORDS, "location": config.LINKEDIN_LOCATION}
        if page == 1:
            return f"{SEARCH_URL}?{urlencode(params)}"
        params["start"] = (page - 1) * PAGE_SIZE
        return f"{PAGINATION_URL}?{urlencode(params)}"

    def parse_listing(self, html: str, page: int) -> ListingPage:
        soup = BeautifulSoup(html, "html.parser")
        items = []
        for card in soup.select("div.base-card, div.base-search-card, div.job-search-card"):
            href = select_attr(card, "a.base-card__full-link", "href") or select_attr(card, "a", "href")
            if not href:
                continue
            items.append(ListingItem(
                url=self._canonical_url(href, card.get("data-entity-urn", "")),
                title=select_text(card, "h3.base-search-card__title", ".base-search-card__title") or "",
                company=select_text(card, "h4.base-search-card__subtitle", ".base-search-card__subtitle") or "",
                location=select_text(card, "span.job-search-card__location") or "",
                salary=select_text(card, "span.job-search-card__salary-info") or "",
            ))

        total = self._total_pages(soup, len(items)) if page == 1 else 1
        logger.info(f"[{self.name}] Found {len(items)} jobs on listing page {page}")
        return ListingPage(items=items, total_pages=total)

    def _canonical_url(self, href: str, urn: str) -> str:
        """Tracking query strings differ per impression; the path is stable."""
        parsed = urlparse(href)
        url = f"{parsed.scheme or 'https'}://{parsed.netloc or 'www.linkedin.com'}{parsed.path}"
        if not _ID_RE.search(parsed.path):
            match = _URN_RE.search(urn)
            if match:
                url = f"https://www.linkedin.com/jobs/view/{match.group(1)}"
        return url

    def _total_pages(self, soup: BeautifulSoup, items_on_page: int) -> int:
        text = select_text(soup, ".results-context-header__job-count")
        if text:
            digits = re.sub(r"[^\d]", "", text)
            if digits:
                return max(1, math.ceil(int(digits) / PAGE_SIZE))
        return 1 if items_on_page else 0

    def extract_external_id(self, url: str) -> str | None:
        parsed = urlparse(url)
        current = parse_qs(parsed.query).get("currentJobId")
        if current and current[0].isdigit():
            return f"linkedin-{current[0]}"
        match = _ID_RE.search(parsed.path)
        return f"linkedin-{match.group(1)}" if match else None

    def parse_detail(self, html: str, url: str) -> dict:
        soup = BeautifulSoup(html, "html.parser")
        ld = job_posting_fields(find_job_posting(soup))

        def criteria(*labels):
            return labeled_value(soup, "li.description__job-criteria-item", "h3.description__job-criteria-subheader",
                                 "span.description__job-criteria-text", *labels)

        return {
            "title": first_non_empty(
                lambda: ld.get("title"),
                lambda: select_text(soup, "h1.top-card-layout__title", "h2.topcard__title", "h1"),
            ),
            "company": first_non_empty(
                lambda: ld.get("company"),
                lambda: select_text(soup, "a.topcard__org-name-link", "span.topcard__flavor a", ".topcard__org-name"),
            ),
            "location": first_non_empty(
                lambda: ld.get("location"),
                lambda: select_text(soup, "span.topcard__flavor--bullet", ".topcard__flavor-row .topcard__flavor--bullet"),
            ),
            "salary": first_non_empty(
                lambda: ld.get("salary"),
                lambda: select_text(soup, ".salary.compensation__salary", ".compensation__salary"),
            ),
            "description": first_non_empty(
                lambda: ld.get("description"),
                lambda: select_html(soup, ".show-more-less-html__markup", ".description__text"),
            ),
            "job_type": first_non_empty(lambda: ld.get("job_type"), lambda: criteria("Employment type")),
            "experience": ld.get("experience", ""),
            "level": criteria("Seniority level"),
            "industry": first_non_empty(lambda: ld.get("industry"), lambda: criteria("Industries")),
            "education": ld.get("education", ""),
            "posted_at": first_non_empty(
                lambda: ld.get("posted_at"),
                lambda: self._posted_at(soup),
            ),
            "deadline": ld.get("deadline", ""),
            "logo_url": first_non_empty(
                lambda: ld.get("logo_url"),
                lambda: select_attr(soup, "img.artdeco-entity-image", "data-delayed-url"),
            ),
            "skills_text": ld.get("skills_text", ""),
            "categories": [c for c in [criteria("Job function")] if c],
        }

    def _posted_at(self, soup: BeautifulSoup) -> str | None:
        """Parse 'X days/weeks ago' from the top card into an ISO timestamp."""
        text = select_text(soup, "span.posted-time-ago__text", ".posted-time-ago__text")
        if not text:
            return None

        match = re.search(r"(\d+)\s+(minute|hour|day|week|month)", text.lower())
        if not match:
            return None

        amount = int(match.group(1))
        unit = match.group(2)
        now = datetime.now(timezone.utc)

        if unit == "minute":
            posted = now - timedelta(minutes=amount)
        elif unit == "hour":
            posted = now - timedelta(hours=amount)
        elif unit == "day":
            posted = now - timedelta(days=amount)
        elif unit == "week":
            posted = now - timedelta(weeks=amount)
        else:
            posted = now - timedelta(days=amount * 30)

        return posted.isoformat()
