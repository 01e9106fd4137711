"""TopCV (topcv.vn) listing and detail scraping.

Detail pages come in three layouts that are all still served: the current
job page, the older ``box-info-job`` page and the premium brand page under
``/brand/``. Each field is read from the embedded JobPosting JSON-LD when
present and from whichever layout matches otherwise.
"""

import logging
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

import config as config
from extraction import (
    find_job_posting,
    first_non_empty,
    job_posting_fields,
    labeled_value,
    section_by_heading,
    select_attr,
    select_text,
)
from sources.base import BaseSource, ListingItem, ListingPage

logger = logging.getLogger(__name__)

BASE_URL = "https://www.topcv.vn"

_ID_RE = re.compile(r"(?:/|-j)(\d+)\.html$")
_PAGES_RE = re.compile(r"/\s*(\d+)")
_DATE_RE = re.compile(r"\d{1,2}/\d{1,2}/\d{4}")

DESCRIPTION_HEADINGS = ("Mô tả công việc", "Job description")
REQUIREMENT_HEADINGS = ("Yêu cầu ứng viên", "Yêu cầu công việc", "Requirements")
BENEFIT_HEADINGS = ("Quyền lợi", "Benefits")


class TopCVSource(BaseSource):
    name = "topcv"
    display_name = "TopCV"
    hosts = ("topcv.vn",)

    def listing_url(self, page: int) -> str:
        base = config.TOPCV_LISTING_URL
        sep = "&" if "?" in base else "?"
        return f"{base}{sep}page={page}"

    def parse_listing(self, html: str, page: int) -> ListingPage:
        soup = BeautifulSoup(html, "html.parser")
        items = []
        for card in soup.select(".job-item-2, .job-item-default, .job-item-search-result"):
            link = card.select_one("h3.title a, .title a")
            href = link.get("href") if link else None
            if not href:
                continue
            items.append(ListingItem(
                url=urljoin(BASE_URL, href),
                title=first_non_empty(
                    lambda: select_text(card, ".title a span"),
                    lambda: link.get("title"),
                    lambda: link.get_text(" ", strip=True),
                ),
                company=select_text(card, ".company .company-name", ".company a", "a.company") or "",
                salary=select_text(card, ".title-salary", ".salary", ".label-salary") or "",
                location=select_text(card, ".address .city-text", ".address", ".label-address") or "",
            ))

        total = self._total_pages(soup) if page == 1 else 1
        logger.info(f"[{self.name}] Found {len(items)} jobs on listing page {page}")
        return ListingPage(items=items, total_pages=total)

    def _total_pages(self, soup: BeautifulSoup) -> int:
        text = select_text(soup, "#job-listing-paginate-text", ".job-listing-paginate-text")
        if text:
            match = _PAGES_RE.search(text)
            if match:
                return int(match.group(1))

        numbers = [
            int(a.get_text(strip=True))
            for a in soup.select("ul.pagination li a, .pagination a")
            if a.get_text(strip=True).isdigit()
        ]
        return max(numbers) if numbers else 1

    def extract_external_id(self, url: str) -> str | None:
        path = urlparse(url).path
        match = _ID_RE.search(path)
        if match:
            return f"topcv-{match.group(1)}"
        return f"topcv-{path.rstrip('/')}" if path.strip("/") else None

    def parse_detail(self, html: str, url: str) -> dict:
        soup = BeautifulSoup(html, "html.parser")
        ld = job_posting_fields(find_job_posting(soup))

        def info(*labels):
            return first_non_empty(
                lambda: labeled_value(soup, ".job-detail__info--section", ".job-detail__info--section-content-title",
                                      ".job-detail__info--section-content-value", *labels),
                lambda: labeled_value(soup, ".box-general-group-info", ".box-general-group-info-title",
                                      ".box-general-group-info-value", *labels),
                lambda: labeled_value(soup, ".box-general-item", ".box-general-item__title",
                                      ".box-general-item__value", *labels),
                lambda: labeled_value(soup, ".box-info-job .box-item", "strong", "span", *labels),
                lambda: labeled_value(soup, ".premium-job-general-information__content--row",
                                      ".general-information-data__label", ".general-information-data__value", *labels),
            )

        def section(*headings):
            return first_non_empty(
                lambda: section_by_heading(soup, ".job-description__item", "h3",
                                           ".job-description__item--content", *headings),
                lambda: section_by_heading(soup, ".premium-job-description__box",
                                           ".premium-job-description__box--title",
                                           ".premium-job-description__box--content", *headings),
                lambda: section_by_heading(soup, ".job-data .content-tab", "h3", "div", *headings),
            )

        tags = [a.get_text(" ", strip=True)
                for a in soup.select(".job-tags a, .box-category-tag a, .job-tags__group-list-tag-scroll a")]
        categories = [a.get_text(" ", strip=True)
                      for a in soup.select(".job-detail__box--category a, .box-category .box-category-tags a")]

        return {
            "title": first_non_empty(
                lambda: ld.get("title"),
                lambda: select_text(soup, "h1.job-detail__info--title", "h1.job-title", ".box-header-job h1",
                                    ".premium-job-basic-information__content--title"),
            ),
            "company": first_non_empty(
                lambda: ld.get("company"),
                lambda: select_text(soup, ".company-name-label a", ".job-detail__company--information-item.company-name a",
                                    ".company-title a", ".company-content__title--name"),
            ),
            "location": first_non_empty(
                lambda: info("Địa điểm", "Location"),
                lambda: select_text(soup, ".job-detail__info--address", ".box-address div"),
                lambda: ld.get("location"),
            ),
            "salary": first_non_empty(
                lambda: info("Mức lương", "Thu nhập", "Salary"),
                lambda: ld.get("salary"),
            ),
            "experience": first_non_empty(
                lambda: info("Kinh nghiệm", "Experience"),
                lambda: ld.get("experience"),
            ),
            "level": info("Cấp bậc", "Level"),
            "job_type": first_non_empty(
                lambda: info("Hình thức làm việc", "Working type"),
                lambda: ld.get("job_type"),
            ),
            "education": first_non_empty(
                lambda: info("Học vấn", "Education"),
                lambda: ld.get("education"),
            ),
            "gender": info("Giới tính", "Gender"),
            "industry": first_non_empty(lambda: ld.get("industry"), lambda: info("Lĩnh vực", "Ngành nghề")),
            "description": first_non_empty(
                lambda: section(*DESCRIPTION_HEADINGS),
                lambda: ld.get("description"),
            ),
            "requirements": section(*REQUIREMENT_HEADINGS),
            "benefits": section(*BENEFIT_HEADINGS),
            "deadline": first_non_empty(
                lambda: self._deadline(soup),
                lambda: ld.get("deadline"),
            ),
            "posted_at": ld.get("posted_at", ""),
            "logo_url": first_non_empty(
                lambda: ld.get("logo_url"),
                lambda: select_attr(soup, ".job-detail__company--information img, .company-logo img", "src"),
            ),
            "skills_text": ld.get("skills_text", ""),
            "tags": tags,
            "categories": categories,
            "is_verified": bool(soup.select_one(".job-detail__company--verified, .icon-verified")),
            "is_branded": "/brand/" in urlparse(url).path,
        }

    def _deadline(self, soup: BeautifulSoup) -> str | None:
        text = select_text(soup, ".job-detail__info--deadline", ".deadline", ".job-detail__information-detail--actions-label")
        if text:
            match = _DATE_RE.search(text)
            return match.group(0) if match else None
        return None
