from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum


class JobType(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    CONTRACT = "Contract"
    FREELANCE = "Freelance"
    INTERNSHIP = "Internship"
    REMOTE = "Remote"
    HYBRID = "Hybrid"
    OTHER = "Other"


class JobLevel(str, Enum):
    INTERN = "Intern"
    FRESHER = "Fresher"
    JUNIOR = "Junior"
    MIDDLE = "Middle"
    SENIOR = "Senior"
    LEAD = "Lead"
    MANAGER = "Manager"
    DIRECTOR = "Director"
    NOT_SPECIFIED = "Not specified"


class Currency(str, Enum):
    VND = "VND"
    USD = "USD"
    EUR = "EUR"
    JPY = "JPY"
    OTHER = "Other"


class Education(str, Enum):
    PHD = "PhD"
    MASTER = "Master"
    UNIVERSITY = "University"
    COLLEGE = "College"
    VOCATIONAL = "Vocational"
    HIGH_SCHOOL = "High school"
    NOT_REQUIRED = "Not required"
    OTHER = "Other"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    ANY = "Any"


class Industry(str, Enum):
    IT_SOFTWARE = "IT - Software"
    FINANCE_BANKING = "Finance - Banking"
    SALES_MARKETING = "Sales - Marketing"
    MANUFACTURING = "Manufacturing"
    EDUCATION = "Education"
    HEALTHCARE = "Healthcare"
    RETAIL = "Retail"
    LOGISTICS = "Logistics"
    CONSTRUCTION = "Construction - Real estate"
    OTHER = "Other"


class MatchType(str, Enum):
    EXTERNAL_ID = "external_id"
    EXACT_HASH = "exact_hash"
    FUZZY_TITLE = "fuzzy_title"
    NONE = "none"


class CrawlStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


# Canonical city names
HO_CHI_MINH = "Hồ Chí Minh"
HA_NOI = "Hà Nội"
DA_NANG = "Đà Nẵng"
CAN_THO = "Cần Thơ"
HAI_PHONG = "Hải Phòng"
BINH_DUONG = "Bình Dương"
DONG_NAI = "Đồng Nai"
NATIONWIDE = "Toàn quốc"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SalaryRange:
    min: int = 0
    max: int = 0
    currency: Currency = Currency.VND


@dataclass
class JobPosting:
    title: str
    company: str
    url: str
    source: str  # "topcv", "linkedin", etc.
    external_id: str | None = None
    location: str = ""
    city: str = NATIONWIDE
    salary_min: int = 0
    salary_max: int = 0
    currency: Currency = Currency.VND
    salary: str = ""  # raw salary text as shown on the source
    description: str = ""
    requirements: str = ""
    benefits: str = ""
    job_type: JobType = JobType.FULL_TIME
    experience_level: JobLevel = JobLevel.NOT_SPECIFIED
    education: Education = Education.NOT_REQUIRED
    gender: Gender = Gender.ANY
    industry: Industry = Industry.OTHER
    skills: list[str] = field(default_factory=list)
    posted_at: datetime | None = None
    deadline: datetime | None = None
    content_hash: str = ""
    logo_url: str = ""
    tags: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    is_verified: bool = False
    is_branded: bool = False
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def update_fields(self) -> dict:
        """Fields written when an existing posting is refreshed in place."""
        data = asdict(self)
        for key in ("id", "created_at", "updated_at"):
            data.pop(key)
        return data


@dataclass
class CrawlResult:
    jobs_found: int = 0
    jobs_created: int = 0
    jobs_updated: int = 0
    jobs_skipped: int = 0
    duplicates_skipped: int = 0
    errors: int = 0

    @property
    def succeeded(self) -> int:
        """Items that reached a terminal non-error outcome."""
        return self.jobs_created + self.jobs_updated + self.duplicates_skipped


@dataclass(frozen=True)
class CrawlRunStats:
    source: str
    status: CrawlStatus
    jobs_found: int = 0
    jobs_created: int = 0
    jobs_updated: int = 0
    jobs_skipped: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    duration_ms: int = 0
    error_message: str | None = None
    run_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["run_at"] = self.run_at.isoformat()
        return data


@dataclass
class DuplicateCheckResult:
    is_duplicate: bool
    existing_id: int | None = None
    match_type: MatchType = MatchType.NONE
    similarity: float | None = None
