"""
Eligibility filtering for funding programs.

Cheap boolean checks that run before any scoring. A program that fails here
is categorically inapplicable to the organization (wrong status, wrong
organization type, TRL out of range, deadline gone) and is never scored.
Also provides title-based deduplication of re-announced programs.
"""

import re
import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from match_models import FundingProgram, Organization, OrganizationType, ProgramStatus

logger = logging.getLogger(__name__)

# Historical mode widens the program TRL range by this much on each side
HISTORICAL_TRL_RELAXATION = 3

# Physician-scientist / tertiary-hospital programs are only open to research institutes
HOSPITAL_ONLY_KEYWORDS = ['의사과학자', '상급종합병원', 'M.D.-Ph.D.', '의료법']

# Exclusion reasons (stable codes, surfaced in logs and stats)
REASON_INACTIVE = "PROGRAM_NOT_ACTIVE"
REASON_ARCHIVED = "PROGRAM_ARCHIVED"
REASON_ORG_TYPE = "ORGANIZATION_TYPE_NOT_ELIGIBLE"
REASON_TRL = "TRL_OUT_OF_RANGE"
REASON_DEADLINE = "DEADLINE_PASSED"
REASON_CONSOLIDATED = "CONSOLIDATED_ANNOUNCEMENT"
REASON_HOSPITAL_ONLY = "HOSPITAL_ONLY_PROGRAM"


class EligibilityFilter:
    """
    Hard eligibility gate for (organization, program) pairs.
    No partial credit: a pair either passes or is excluded with a reason.
    """

    def __init__(self, today: Optional[date] = None):
        """
        Args:
            today: Fixed reference date (tests); defaults to the current date on each check
        """
        self._today = today

    def check(
        self,
        organization: Organization,
        program: FundingProgram,
        include_expired: bool = False,
    ) -> Tuple[bool, Optional[str]]:
        """
        Run all eligibility checks in order.

        Args:
            organization: Applicant profile
            program: Candidate program
            include_expired: Historical mode; relaxes status, deadline,
                             organization type and TRL checks

        Returns:
            (passed, reason) - reason is None when passed
        """
        today = self._today or date.today()

        # Status
        if program.status == ProgramStatus.ARCHIVED:
            return False, REASON_ARCHIVED
        if program.status != ProgramStatus.ACTIVE and not include_expired:
            return False, REASON_INACTIVE

        # Organization type (empty set = open to all types)
        if program.eligible_organization_types and organization.organization_type not in program.eligible_organization_types:
            if not include_expired:
                return False, REASON_ORG_TYPE

        # TRL window
        if not self._trl_in_range(organization, program, include_expired):
            return False, REASON_TRL

        # Deadline
        if program.deadline and program.deadline < today and not include_expired:
            return False, REASON_DEADLINE

        # Consolidated announcements (통합 공고) carry no actionable application details
        if not program.deadline and not program.application_start and not program.budget:
            return False, REASON_CONSOLIDATED

        if self._is_hospital_only(program) and organization.organization_type != OrganizationType.RESEARCH_INSTITUTE:
            return False, REASON_HOSPITAL_ONLY

        return True, None

    def is_eligible(self, organization: Organization, program: FundingProgram, include_expired: bool = False) -> bool:
        """Boolean form of check()"""
        passed, _ = self.check(organization, program, include_expired)
        return passed

    def _trl_in_range(self, organization: Organization, program: FundingProgram, include_expired: bool) -> bool:
        """Check organization TRL against the program's declared range"""
        org_trl = organization.technology_readiness_level
        if org_trl is None:
            return True
        if program.trl_min is None and program.trl_max is None:
            return True

        low = program.trl_min if program.trl_min is not None else 1
        high = program.trl_max if program.trl_max is not None else 9

        if include_expired:
            low = max(1, low - HISTORICAL_TRL_RELAXATION)
            high = min(9, high + HISTORICAL_TRL_RELAXATION)

        return low <= org_trl <= high

    def _is_hospital_only(self, program: FundingProgram) -> bool:
        return any(keyword in program.title for keyword in HOSPITAL_ONLY_KEYWORDS)


# ============================================================================
# Deduplication
# ============================================================================

def normalize_title(title: str) -> str:
    """
    Normalize a program title for duplicate detection.

    "2025년도 AI 바우처 지원사업(2차)" and "AI 바우처 지원사업" produce the same key.
    """
    normalized = re.sub(r'^\d{4}년도?\s*', '', title or '')        # year prefix
    normalized = re.sub(r'\([^)]*\)\s*$', '', normalized)          # trailing parenthetical
    normalized = re.sub(r'[_\s]*\(?20\d{2}\)?$', '', normalized)      # trailing year
    normalized = re.sub(r'\s+', ' ', normalized)
    return normalized.strip().lower()


def _dedup_key(program: FundingProgram) -> str:
    # Untitled programs are never merged
    title = normalize_title(program.title) or f"#{program.id}"
    return f"{program.agency}|{title}"


def _preference(program: FundingProgram) -> Tuple[int, int, datetime]:
    """Sort key: deadline first, then budget, then earliest scrape"""
    return (
        0 if program.deadline else 1,
        0 if program.budget else 1,
        program.scraped_at.replace(tzinfo=None) if program.scraped_at else datetime.max,
    )


def deduplicate_programs(programs: List[FundingProgram]) -> List[FundingProgram]:
    """
    Collapse re-announcements of the same program.

    Groups by (agency, normalized title) and keeps one program per group,
    preferring one with a deadline, then one with a budget, then the
    earliest scraped. Group order follows first appearance.
    """
    groups: Dict[str, List[FundingProgram]] = {}
    for program in programs:
        groups.setdefault(_dedup_key(program), []).append(program)

    kept = [min(group, key=_preference) for group in groups.values()]

    removed = len(programs) - len(kept)
    if removed:
        logger.info(f"[MATCHING] Deduplicated {removed} re-announced programs")
    return kept
