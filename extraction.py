"""HTML field extraction: schema.org JobPosting JSON-LD first, CSS-selector fallbacks second.

Layout fallbacks are ordered lists of attempts per field; each attempt
returns a string or None and the first non-empty value wins.
"""

import json
import logging
from typing import Any, Callable

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


def find_job_posting(soup: BeautifulSoup) -> dict:
    """Return the first JobPosting object embedded as JSON-LD, or {}."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug(f"Failed to parse JSON-LD: {e}")
            continue

        for item in _flatten(data):
            if _is_job_posting(item):
                return item
    return {}


def _flatten(data: Any) -> list[dict]:
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        if isinstance(data.get("@graph"), list):
            return [item for item in data["@graph"] if isinstance(item, dict)]
        return [data]
    return []


def _is_job_posting(item: dict) -> bool:
    item_type = item.get("@type", "")
    if isinstance(item_type, list):
        return any("JobPosting" in str(t) for t in item_type)
    return "JobPosting" in str(item_type)


def job_posting_fields(posting: dict) -> dict:
    """Flatten the JobPosting properties we ingest into raw field strings."""
    if not posting:
        return {}

    fields = {
        "title": _text(posting.get("title")),
        "description": _text(posting.get("description")),
        "job_type": _joined(posting.get("employmentType")),
        "experience": _experience(posting),
        "posted_at": _text(posting.get("datePosted")),
        "deadline": _text(posting.get("validThrough")),
        "industry": _joined(posting.get("industry")),
        "skills_text": _joined(posting.get("skills")),
        "education": _education(posting.get("educationRequirements")),
    }

    org = posting.get("hiringOrganization")
    if isinstance(org, dict):
        fields["company"] = _text(org.get("name") or org.get("legalName"))
        logo = org.get("logo")
        fields["logo_url"] = _text(logo.get("url") if isinstance(logo, dict) else logo)
    elif isinstance(org, str):
        fields["company"] = org.strip()

    fields["location"] = _location(posting.get("jobLocation"))
    fields["salary"] = _salary(posting.get("baseSalary"))
    return {k: v for k, v in fields.items() if v}


def _text(value) -> str:
    return str(value).strip() if value not in (None, "") else ""


def _joined(value) -> str:
    if isinstance(value, list):
        return ", ".join(str(v).strip() for v in value if v)
    return _text(value)


def _experience(posting: dict) -> str:
    req = posting.get("experienceRequirements")
    if isinstance(req, dict):
        months = req.get("monthsOfExperience")
        if isinstance(months, (int, float)) or (isinstance(months, str) and months.isdigit()):
            return f"{int(months) // 12} years"
        return _text(req.get("description"))
    return _text(req)


def _education(value) -> str:
    if isinstance(value, dict):
        return _text(value.get("credentialCategory") or value.get("name"))
    return _text(value)


def _location(value) -> str:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, dict):
        return ""

    address = value.get("address")
    if isinstance(address, str):
        return address.strip()
    if isinstance(address, dict):
        parts = [
            address.get("streetAddress"),
            address.get("addressLocality"),
            address.get("addressRegion"),
        ]
        joined = ", ".join(str(p).strip() for p in parts if p)
        return joined or _text(address.get("addressCountry"))
    return _text(value.get("name"))


def _salary(value) -> str:
    """Render baseSalary as text the salary parser understands."""
    if not isinstance(value, dict):
        return _text(value)

    currency = _text(value.get("currency"))
    amount = value.get("value")
    if isinstance(amount, dict):
        low = amount.get("minValue")
        high = amount.get("maxValue")
        single = amount.get("value")
    else:
        low = high = None
        single = amount

    if low and high:
        return f"{low} - {high} {currency}".strip()
    if low:
        return f"From {low} {currency}".strip()
    if high:
        return f"Up to {high} {currency}".strip()
    if single:
        return f"{single} {currency}".strip()
    return ""


# --- Layout fallbacks ---


def first_non_empty(*attempts: Callable[[], str | None]) -> str:
    """Run extraction attempts in order and return the first non-empty result."""
    for attempt in attempts:
        value = attempt()
        if value and value.strip():
            return value.strip()
    return ""


def select_text(root: BeautifulSoup | Tag, *selectors: str) -> str | None:
    """Text of the first element matching any of the selectors, in order."""
    for selector in selectors:
        el = root.select_one(selector)
        if el:
            text = el.get_text(" ", strip=True)
            if text:
                return text
    return None


def select_attr(root: BeautifulSoup | Tag, selector: str, attr: str) -> str | None:
    el = root.select_one(selector)
    value = el.get(attr) if el else None
    return value if isinstance(value, str) else None


def select_html(root: BeautifulSoup | Tag, *selectors: str) -> str | None:
    """Inner HTML of the first element matching any of the selectors."""
    for selector in selectors:
        el = root.select_one(selector)
        if el:
            inner = el.decode_contents().strip()
            if inner:
                return inner
    return None


def labeled_value(root: BeautifulSoup | Tag, item_selector: str, label_selector: str,
                  value_selector: str, *labels: str) -> str | None:
    """Value of a label/value box whose label contains one of ``labels``.

    Job boards render summary facts as repeated boxes such as
    ``<div class="item"><span class="label">Cấp bậc</span><b class="value">Nhân viên</b></div>``.
    """
    for item in root.select(item_selector):
        label_el = item.select_one(label_selector)
        if not label_el:
            continue
        label = label_el.get_text(" ", strip=True).lower()
        if any(l.lower() in label for l in labels):
            value_el = item.select_one(value_selector)
            if value_el:
                return value_el.get_text(" ", strip=True)
    return None


def section_by_heading(root: BeautifulSoup | Tag, item_selector: str, heading_selector: str,
                       content_selector: str, *headings: str) -> str | None:
    """Inner HTML of a description section identified by its heading text."""
    for item in root.select(item_selector):
        heading = item.select_one(heading_selector)
        if heading and any(h.lower() in heading.get_text(" ", strip=True).lower() for h in headings):
            content = item.select_one(content_selector)
            if content:
                return content.decode_contents().strip()
    return None
