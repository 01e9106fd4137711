"""Map raw scraped strings onto the canonical posting vocabulary.

Every function here is total: absent or unrecognised input yields a safe
default instead of an exception. Keyword lists cover both English and
Vietnamese phrasing, and matching is done against the lowercased text as
well as a diacritic-folded copy so unaccented input ("ha noi") still matches.
"""

import logging
import re
import unicodedata
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from bs4 import BeautifulSoup, Comment

from models import (
    BINH_DUONG,
    CAN_THO,
    DA_NANG,
    DONG_NAI,
    HA_NOI,
    HAI_PHONG,
    HO_CHI_MINH,
    NATIONWIDE,
    Currency,
    Education,
    Gender,
    Industry,
    JobLevel,
    JobType,
    SalaryRange,
)

logger = logging.getLogger(__name__)


def _lower(text: str) -> str:
    return unicodedata.normalize("NFC", text).lower().strip()


def _fold(text: str) -> str:
    """Lowercase and strip Vietnamese diacritics ('Đà Nẵng' -> 'da nang')."""
    text = _lower(text).replace("đ", "d")
    return "".join(c for c in unicodedata.normalize("NFD", text) if unicodedata.category(c) != "Mn")


def _has(text: str, *keywords: str) -> bool:
    lower = _lower(text)
    folded = _fold(text)
    return any(kw in lower or _fold(kw) in folded for kw in keywords)


def _has_word(text: str, *words: str) -> bool:
    folded = _fold(text)
    return any(re.search(rf"(?<![a-z0-9]){re.escape(_fold(w))}(?![a-z0-9])", folded) for w in words)


# --- Job type ---


def normalize_job_type(raw: str | None) -> JobType:
    if not raw:
        return JobType.FULL_TIME

    if _has(raw, "toàn thời gian", "full-time", "fulltime", "full time", "chính thức"):
        return JobType.FULL_TIME
    if _has(raw, "bán thời gian", "part-time", "parttime", "part time"):
        return JobType.PART_TIME
    if _has(raw, "thực tập", "apprenticeship") or _has_word(raw, "intern", "internship"):
        return JobType.INTERNSHIP
    if _has(raw, "tự do", "freelance"):
        return JobType.FREELANCE
    if _has(raw, "hợp đồng", "contract", "thời vụ"):
        return JobType.CONTRACT
    if _has(raw, "remote", "từ xa"):
        return JobType.REMOTE
    if _has(raw, "hybrid", "linh hoạt"):
        return JobType.HYBRID

    return JobType.FULL_TIME


# --- Experience level ---

_YEARS_RE = re.compile(r"(\d+)\s*\+?\s*(?:-\s*\d+\s*)?(?:năm|nam|years?|yrs?)\b")


def _years_of_experience(raw: str) -> int | None:
    """Lower bound of a years-of-experience phrase ('1 - 3 năm' -> 1)."""
    match = _YEARS_RE.search(_lower(raw))
    return int(match.group(1)) if match else None


def normalize_experience_level(raw: str | None) -> JobLevel:
    if not raw or _lower(raw) == "not specified":
        return JobLevel.NOT_SPECIFIED

    if _has(raw, "không yêu cầu kinh nghiệm", "chưa có kinh nghiệm", "no experience"):
        return JobLevel.FRESHER
    if _has(raw, "thực tập") or _has_word(raw, "intern", "internship"):
        return JobLevel.INTERN
    if _has(raw, "dưới 1 năm", "under 1 year", "less than 1 year", "0-1 year"):
        return JobLevel.FRESHER

    years = _years_of_experience(raw)
    if years is not None:
        if years == 0:
            return JobLevel.FRESHER
        if years <= 2:
            return JobLevel.JUNIOR
        if years <= 4:
            return JobLevel.MIDDLE
        return JobLevel.SENIOR

    if _has(raw, "fresher", "freshman", "sinh viên", "mới tốt nghiệp", "graduate"):
        return JobLevel.FRESHER
    if _has(raw, "junior", "nhân viên"):
        return JobLevel.JUNIOR
    if _has(raw, "senior", "chuyên gia"):
        return JobLevel.SENIOR
    if _has(raw, "middle", "mid-level", "intermediate"):
        return JobLevel.MIDDLE
    if _has(raw, "lead", "trưởng nhóm"):
        return JobLevel.LEAD
    if _has(raw, "manager", "quản lý", "trưởng phòng", "phó phòng"):
        return JobLevel.MANAGER
    if _has(raw, "director", "giám đốc", "head of"):
        return JobLevel.DIRECTOR

    return JobLevel.NOT_SPECIFIED


# --- Salary ---

_NEGOTIABLE = ("thỏa thuận", "thoả thuận", "thương lượng", "negotiable")
_FLOOR_WORDS = ("trên", "từ", ">", "min", "from", "over", "above", "at least")
_CEILING_WORDS = ("tới", "đến", "up to", "max", "<", "under", "below")
_MILLION_RE = re.compile(r"triệu|trieu|million|\btr\b|\d\s*tr\b|\d\s*m\b")
_NUMBER_RE = re.compile(r"\d[\d,.]*")


def _to_number(token: str, currency: Currency) -> float | None:
    cleaned = token.rstrip(".,").replace(",", "")
    # VND uses dots as thousands separators: "1.500.000"
    if currency is Currency.VND and "." in cleaned and len(cleaned.rsplit(".", 1)[1]) == 3:
        cleaned = cleaned.replace(".", "")
    try:
        return float(cleaned)
    except ValueError:
        return None


def _detect_currency(lower: str) -> Currency:
    if "usd" in lower or "$" in lower:
        return Currency.USD
    if "eur" in lower or "€" in lower:
        return Currency.EUR
    if "jpy" in lower or "yen" in lower or "¥" in lower:
        return Currency.JPY
    return Currency.VND


def parse_salary(raw: str | None) -> SalaryRange:
    """Parse salary text like '15 - 30 triệu', 'Up to 2,000 USD' or 'Thỏa thuận'.

    A single number is a floor unless a ceiling word ('tới', 'up to') is
    present. Small VND numbers next to a million word are scaled to dong.
    """
    if not raw or _has(raw, *_NEGOTIABLE):
        return SalaryRange()

    lower = _lower(raw)
    currency = _detect_currency(lower)

    numbers = [n for n in (_to_number(t, currency) for t in _NUMBER_RE.findall(lower)) if n is not None]

    low = high = 0.0
    if len(numbers) >= 2:
        low, high = numbers[0], numbers[1]
    elif len(numbers) == 1:
        if any(w in lower for w in _FLOOR_WORDS):
            low = numbers[0]
        elif any(w in lower for w in _CEILING_WORDS):
            high = numbers[0]
        else:
            low = numbers[0]

    if currency is Currency.VND and _MILLION_RE.search(lower):
        if 0 < low < 1000:
            low *= 1_000_000
        if 0 < high < 1000:
            high *= 1_000_000

    return SalaryRange(min=int(round(low)), max=int(round(high)), currency=currency)


# --- HTML ---

_REMOVED_TAGS = ["script", "style", "iframe", "input", "object", "embed"]
_URL_ATTRS = {"href", "src", "action", "formaction"}


def sanitize_html(raw: str | None) -> str:
    """Drop active content and inline event handlers, keep the markup otherwise."""
    if not raw:
        return ""

    soup = BeautifulSoup(raw, "html.parser")
    for tag in soup.find_all(_REMOVED_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for form in soup.find_all("form"):
        form.unwrap()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            value = tag.attrs[attr]
            if attr.lower().startswith("on"):
                del tag.attrs[attr]
            elif attr.lower() in _URL_ATTRS and isinstance(value, str) and value.strip().lower().startswith("javascript:"):
                del tag.attrs[attr]

    return str(soup).strip()


def html_to_text(raw: str | None) -> str:
    if not raw:
        return ""
    return BeautifulSoup(raw, "html.parser").get_text(" ", strip=True)


# --- Location ---

CITY_ALIASES = [
    (HO_CHI_MINH, ["hồ chí minh", "hcm", "tphcm", "sài gòn", "saigon", "district 1", "quận 1"]),
    (HA_NOI, ["hà nội", "hanoi", "hn", "ba đình", "cầu giấy"]),
    (DA_NANG, ["đà nẵng", "danang", "dn"]),
    (CAN_THO, ["cần thơ"]),
    (HAI_PHONG, ["hải phòng"]),
    (BINH_DUONG, ["bình dương"]),
    (DONG_NAI, ["đồng nai"]),
    (NATIONWIDE, ["toàn quốc", "nationwide"]),
]


def normalize_city(raw: str | None) -> str:
    """Canonical city for a location string or address."""
    if not raw or not raw.strip():
        return NATIONWIDE

    for city, aliases in CITY_ALIASES:
        if _has_word(raw, *aliases):
            return city

    if "," in raw:
        segments = [s.strip() for s in raw.split(",") if s.strip()]
        if segments:
            return segments[-1]

    return raw.strip()


# --- Secondary attributes ---


def normalize_education(raw: str | None) -> Education:
    if not raw:
        return Education.NOT_REQUIRED

    if _has(raw, "tiến sĩ", "phd", "doctor"):
        return Education.PHD
    if _has(raw, "thạc sĩ", "master"):
        return Education.MASTER
    if _has(raw, "đại học", "cử nhân", "university", "bachelor"):
        return Education.UNIVERSITY
    if _has(raw, "cao đẳng", "college"):
        return Education.COLLEGE
    if _has(raw, "trung cấp", "vocational"):
        return Education.VOCATIONAL
    if _has(raw, "thpt", "high school", "12/12"):
        return Education.HIGH_SCHOOL
    if _has(raw, "không yêu cầu", "không bắt buộc", "not required"):
        return Education.NOT_REQUIRED

    return Education.OTHER


def normalize_gender(raw: str | None) -> Gender:
    if not raw:
        return Gender.ANY

    # "Việt Nam" would otherwise read as "nam" (male)
    text = _lower(raw).replace("việt nam", "")
    female = _has_word(text, "nữ", "female", "women")
    male = _has_word(text, "nam", "male", "men")
    # "Nam/Nữ" on Vietnamese boards means either
    if female and not male:
        return Gender.FEMALE
    if male and not female:
        return Gender.MALE

    return Gender.ANY


_INDUSTRY_KEYWORDS = [
    (Industry.IT_SOFTWARE, ["phần mềm", "software", "công nghệ", "technology"], ["it"]),
    (Industry.FINANCE_BANKING, ["tài chính", "ngân hàng", "finance", "banking"], []),
    (Industry.SALES_MARKETING, ["kinh doanh", "marketing", "sales", "bán hàng"], []),
    (Industry.MANUFACTURING, ["sản xuất", "manufacturing", "nhà máy"], []),
    (Industry.EDUCATION, ["giáo dục", "education", "đào tạo"], []),
    (Industry.HEALTHCARE, ["y tế", "healthcare", "bệnh viện"], []),
    (Industry.RETAIL, ["bán lẻ", "retail", "cửa hàng"], []),
    (Industry.LOGISTICS, ["logistics", "vận tải", "shipping", "giao nhận"], []),
    (Industry.CONSTRUCTION, ["xây dựng", "construction", "bất động sản"], []),
]


def normalize_industry(raw: str | None) -> Industry:
    if not raw:
        return Industry.OTHER

    for industry, phrases, words in _INDUSTRY_KEYWORDS:
        if _has(raw, *phrases) or (words and _has_word(raw, *words)):
            return industry

    return Industry.OTHER


KNOWN_SKILLS = [
    "Python", "Java", "JavaScript", "TypeScript", "Node.js", "NestJS", "React",
    "React Native", "Angular", "Vue", "PHP", "Laravel", "Golang", "C#", ".NET",
    "C++", "Ruby", "Kotlin", "Swift", "Flutter", "Android", "iOS", "SQL",
    "MySQL", "PostgreSQL", "MongoDB", "Redis", "Docker", "Kubernetes", "AWS",
    "Azure", "GCP", "Linux", "Git", "Django", "FastAPI", "Spring", "HTML",
    "CSS", "Figma", "Excel", "Tableau", "Power BI", "Selenium",
]

_SKILL_PATTERNS = [
    (skill, re.compile(rf"(?<![\w#+.]){re.escape(skill.lower())}(?![\w#+])"))
    for skill in KNOWN_SKILLS
]


def extract_skills(text: str | None, extra: list[str] | None = None) -> list[str]:
    """Known skills mentioned in ``text`` plus any source-provided tags, deduplicated."""
    found = []
    seen = set()

    def _add(skill: str):
        key = skill.strip().lower()
        if key and key not in seen:
            seen.add(key)
            found.append(skill.strip())

    for skill in extra or []:
        if isinstance(skill, str):
            _add(skill)

    if text:
        lower = _lower(html_to_text(text))
        for skill, pattern in _SKILL_PATTERNS:
            if pattern.search(lower):
                _add(skill)

    return found


# --- Dates ---

_DMY_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")


def parse_date(raw) -> datetime | None:
    """Parse ISO, RFC 2822 and dd/mm/yyyy dates into aware UTC datetimes."""
    if not raw:
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)

    text = str(raw).strip()
    match = _DMY_RE.search(text)
    try:
        if match:
            day, month, year = (int(g) for g in match.groups())
            return datetime(year, month, day, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        try:
            parsed = parsedate_to_datetime(text)
        except (ValueError, TypeError):
            logger.debug(f"Unparseable date: {text!r}")
            return None

    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
