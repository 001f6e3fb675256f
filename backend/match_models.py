"""
Data model for organization-to-program matching.

Organizations and funding programs arrive as plain dicts (API bodies, scraped
rows) with either camelCase or snake_case keys. from_dict() normalizes them
into frozen dataclasses and raises InvalidInputError for anything the
matching pipeline can't work with.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from matching_errors import InvalidInputError


class IndustrySector(str, Enum):
    ICT = "ICT"
    MANUFACTURING = "MANUFACTURING"
    BIO_HEALTH = "BIO_HEALTH"
    ENERGY = "ENERGY"
    ENVIRONMENT = "ENVIRONMENT"
    AGRICULTURE = "AGRICULTURE"
    MARINE = "MARINE"
    CONSTRUCTION = "CONSTRUCTION"
    TRANSPORTATION = "TRANSPORTATION"
    DEFENSE = "DEFENSE"
    CULTURAL = "CULTURAL"
    CONTENT = "CONTENT"
    OTHER = "OTHER"


class OrganizationType(str, Enum):
    COMPANY = "COMPANY"
    RESEARCH_INSTITUTE = "RESEARCH_INSTITUTE"
    UNIVERSITY = "UNIVERSITY"
    PUBLIC_INSTITUTION = "PUBLIC_INSTITUTION"


class RDExperienceLevel(str, Enum):
    """Ordinal R&D track record: NONE < LOW < MEDIUM < HIGH"""
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _EXPERIENCE_ORDER.index(self)


_EXPERIENCE_ORDER = [
    RDExperienceLevel.NONE,
    RDExperienceLevel.LOW,
    RDExperienceLevel.MEDIUM,
    RDExperienceLevel.HIGH,
]


class ProgramStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    ARCHIVED = "ARCHIVED"


# Revenue bucket codes used by the onboarding form, mapped to bucket midpoints (KRW)
REVENUE_RANGE_MIDPOINTS = {
    "UNDER_1B": 500_000_000,
    "FROM_1B_TO_10B": 5_000_000_000,
    "FROM_10B_TO_50B": 30_000_000_000,
    "FROM_50B_TO_100B": 75_000_000_000,
    "OVER_100B": 150_000_000_000,
}

# Component ceilings; they sum to 100
COMPONENT_WEIGHTS = {
    "industry": 30,
    "trl": 20,
    "certifications": 20,
    "budget": 15,
    "experience": 15,
}


# ============================================================================
# Parsing helpers
# ============================================================================

def _pick(data: Dict[str, Any], *keys: str) -> Any:
    """First non-None value among the given keys"""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _parse_enum(enum_cls, value: Any, record_id: Optional[str], field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        raise InvalidInputError(
            f"Unknown {field_name} value: {value!r}", record_id=record_id, field=field_name
        )


def _parse_trl(value: Any, record_id: Optional[str], field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be an integer 1-9", record_id=record_id, field=field_name)
    try:
        trl = int(value)
        whole = trl == float(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInputError(
            f"{field_name} must be an integer 1-9, got {value!r}", record_id=record_id, field=field_name
        )
    if not whole or not 1 <= trl <= 9:
        raise InvalidInputError(
            f"{field_name} must be an integer 1-9, got {value!r}", record_id=record_id, field=field_name
        )
    return trl


def _parse_amount(value: Any, record_id: Optional[str], field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be numeric", record_id=record_id, field=field_name)
    try:
        amount = float(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInputError(
            f"{field_name} must be numeric, got {value!r}", record_id=record_id, field=field_name
        )
    if not math.isfinite(amount):
        raise InvalidInputError(f"{field_name} must be a finite number", record_id=record_id, field=field_name)
    if amount < 0:
        raise InvalidInputError(f"{field_name} must not be negative", record_id=record_id, field=field_name)
    return amount


def _parse_date(value: Any, record_id: Optional[str], field_name: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        raise InvalidInputError(
            f"{field_name} is not an ISO date: {value!r}", record_id=record_id, field=field_name
        )


def _parse_datetime(value: Any, record_id: Optional[str], field_name: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInputError(
            f"{field_name} is not an ISO timestamp: {value!r}", record_id=record_id, field=field_name
        )


def _string_list(value: Any, record_id: Optional[str], field_name: str) -> List[str]:
    """A string or list of strings; anything else is an invalid record"""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise InvalidInputError(
            f"{field_name} must be a list of strings, got {value!r}", record_id=record_id, field=field_name
        )
    items = []
    for item in value:
        if item is None:
            continue
        if not isinstance(item, str):
            raise InvalidInputError(
                f"{field_name} must contain only strings, got {item!r}", record_id=record_id, field=field_name
            )
        if item.strip():
            items.append(item.strip())
    return items


# ============================================================================
# Organization
# ============================================================================

@dataclass(frozen=True)
class Organization:
    """An applicant organization profile"""
    id: str
    organization_type: OrganizationType
    industry_sector: IndustrySector
    technology_readiness_level: Optional[int] = None
    revenue: Optional[float] = None               # KRW
    certifications: FrozenSet[str] = frozenset()
    research_focus_areas: Tuple[str, ...] = ()
    key_technologies: Tuple[str, ...] = ()
    rd_experience_level: RDExperienceLevel = RDExperienceLevel.NONE
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Organization":
        """
        Build an Organization from an API/database dict.

        Raises:
            InvalidInputError: missing id or industry sector, unknown enum value,
                               TRL outside 1-9
        """
        if not isinstance(data, dict):
            raise InvalidInputError("Organization must be an object")

        org_id = _pick(data, "id", "organizationId", "organization_id")
        if org_id is None or str(org_id).strip() == "":
            raise InvalidInputError("Organization is missing 'id'", field="id")
        org_id = str(org_id)

        sector_raw = _pick(data, "industry_sector", "industrySector")
        if sector_raw is None or str(sector_raw).strip() == "":
            raise InvalidInputError(
                "Organization is missing 'industrySector'", record_id=org_id, field="industrySector"
            )
        sector = _parse_enum(IndustrySector, sector_raw, org_id, "industrySector")

        type_raw = _pick(data, "organization_type", "organizationType", "type")
        org_type = (
            _parse_enum(OrganizationType, type_raw, org_id, "organizationType")
            if type_raw is not None
            else OrganizationType.COMPANY
        )

        revenue = _parse_amount(_pick(data, "revenue", "annualRevenue", "annual_revenue"), org_id, "revenue")
        if revenue is None:
            range_code = _pick(data, "revenueRange", "revenue_range")
            if range_code is not None:
                code = str(range_code).strip().upper()
                if code not in REVENUE_RANGE_MIDPOINTS:
                    raise InvalidInputError(
                        f"Unknown revenueRange value: {range_code!r}", record_id=org_id, field="revenueRange"
                    )
                revenue = float(REVENUE_RANGE_MIDPOINTS[code])

        experience_raw = _pick(data, "rd_experience_level", "rdExperienceLevel")
        experience = (
            _parse_enum(RDExperienceLevel, experience_raw, org_id, "rdExperienceLevel")
            if experience_raw is not None
            else RDExperienceLevel.NONE
        )

        return cls(
            id=org_id,
            organization_type=org_type,
            industry_sector=sector,
            technology_readiness_level=_parse_trl(
                _pick(data, "technology_readiness_level", "technologyReadinessLevel", "trl"),
                org_id,
                "technologyReadinessLevel",
            ),
            revenue=revenue,
            certifications=frozenset(_string_list(data.get("certifications"), org_id, "certifications")),
            research_focus_areas=tuple(
                _string_list(_pick(data, "research_focus_areas", "researchFocusAreas"), org_id, "researchFocusAreas")
            ),
            key_technologies=tuple(
                _string_list(_pick(data, "key_technologies", "keyTechnologies"), org_id, "keyTechnologies")
            ),
            rd_experience_level=experience,
            name=data.get("name"),
        )


# ============================================================================
# FundingProgram
# ============================================================================

@dataclass(frozen=True)
class FundingProgram:
    """A government R&D funding announcement"""
    id: str
    title: str = ""
    agency: str = ""
    industry_sector: Optional[IndustrySector] = None
    category: Optional[str] = None
    trl_min: Optional[int] = None
    trl_max: Optional[int] = None
    budget: Optional[float] = None                # KRW
    deadline: Optional[date] = None
    application_start: Optional[date] = None
    certification_requirements: FrozenSet[str] = frozenset()
    eligible_organization_types: FrozenSet[OrganizationType] = frozenset()
    status: ProgramStatus = ProgramStatus.ACTIVE
    required_rd_experience: Optional[RDExperienceLevel] = None
    scraped_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FundingProgram":
        """
        Build a FundingProgram from a scraped/API dict.

        industry_sector may be absent; the matching service resolves it from
        category/title through the taxonomy.

        Raises:
            InvalidInputError: missing id, unknown enum value, bad TRL range,
                               unparseable date or amount
        """
        if not isinstance(data, dict):
            raise InvalidInputError("Program must be an object")

        program_id = _pick(data, "id", "programId", "program_id")
        if program_id is None or str(program_id).strip() == "":
            raise InvalidInputError("Program is missing 'id'", field="id")
        program_id = str(program_id)

        sector_raw = _pick(data, "industry_sector", "industrySector")
        sector = (
            _parse_enum(IndustrySector, sector_raw, program_id, "industrySector")
            if sector_raw not in (None, "")
            else None
        )

        trl_min = _parse_trl(_pick(data, "trl_min", "trlMin", "minTrl"), program_id, "trlMin")
        trl_max = _parse_trl(_pick(data, "trl_max", "trlMax", "maxTrl"), program_id, "trlMax")
        if trl_min is not None and trl_max is not None and trl_min > trl_max:
            raise InvalidInputError(
                f"TRL range is inverted ({trl_min} > {trl_max})", record_id=program_id, field="trlMin"
            )

        type_values = _string_list(
            _pick(data, "eligible_organization_types", "eligibleOrganizationTypes", "targetType"),
            program_id,
            "eligibleOrganizationTypes",
        )
        eligible_types = frozenset(
            _parse_enum(OrganizationType, value, program_id, "eligibleOrganizationTypes") for value in type_values
        )

        category = _pick(data, "category")
        if category is not None and not isinstance(category, str):
            raise InvalidInputError(
                f"category must be a string, got {category!r}", record_id=program_id, field="category"
            )

        status_raw = data.get("status")
        status = (
            _parse_enum(ProgramStatus, status_raw, program_id, "status")
            if status_raw not in (None, "")
            else ProgramStatus.ACTIVE
        )

        experience_raw = _pick(data, "required_rd_experience", "requiredRdExperience")
        experience = (
            _parse_enum(RDExperienceLevel, experience_raw, program_id, "requiredRdExperience")
            if experience_raw not in (None, "")
            else None
        )

        return cls(
            id=program_id,
            title=str(data.get("title") or ""),
            agency=str(_pick(data, "agency", "agencyId", "agency_id") or ""),
            industry_sector=sector,
            category=category,
            trl_min=trl_min,
            trl_max=trl_max,
            budget=_parse_amount(_pick(data, "budget", "budgetAmount", "budget_amount"), program_id, "budget"),
            deadline=_parse_date(data.get("deadline"), program_id, "deadline"),
            application_start=_parse_date(
                _pick(data, "application_start", "applicationStart"), program_id, "applicationStart"
            ),
            certification_requirements=frozenset(
                _string_list(_pick(data, "certification_requirements", "certificationRequirements",
                                   "requiredCertifications"), program_id, "certificationRequirements")
            ),
            eligible_organization_types=eligible_types,
            status=status,
            required_rd_experience=experience,
            scraped_at=_parse_datetime(_pick(data, "scraped_at", "scrapedAt"), program_id, "scrapedAt"),
        )


# ============================================================================
# Scores and candidates
# ============================================================================

@dataclass
class ComponentScores:
    """Per-component points; ceilings in COMPONENT_WEIGHTS"""
    industry: int         # 0-30 points
    trl: int              # 0-20 points
    certifications: int   # 0-20 points
    budget: int           # 0-15 points
    experience: int       # 0-15 points

    @property
    def total(self) -> int:
        return (
            self.industry +
            self.trl +
            self.certifications +
            self.budget +
            self.experience
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class MatchCandidate:
    """A scored organization/program pair that survived filtering"""
    organization_id: str
    program_id: str
    industry_relevance_score: float
    component_scores: ComponentScores
    total_score: int
    warnings: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    deadline: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "program_id": self.program_id,
            "industry_relevance_score": self.industry_relevance_score,
            "component_scores": self.component_scores.to_dict(),
            "total_score": self.total_score,
            "warnings": list(self.warnings),
            "reasons": list(self.reasons),
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }
