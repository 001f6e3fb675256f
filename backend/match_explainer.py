"""
Rule-based match explanations.

Turns a candidate's reason codes and warnings into readable sentences. Used
directly by the explain endpoint and as the fallback when the LLM
explanation is unavailable.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, List, Optional

from match_models import FundingProgram, MatchCandidate, Organization, OrganizationType

DEADLINE_SOON_DAYS = 30


@dataclass
class MatchExplanation:
    summary: str
    reasons: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    source: str = "rules"

    def to_dict(self) -> Dict:
        return asdict(self)


def _subject(org: Organization) -> str:
    return "Your company" if org.organization_type == OrganizationType.COMPANY else "Your institution"


def generate_summary(score: int, org: Organization) -> str:
    """One-line summary by score band"""
    subject = _subject(org)
    if score >= 80:
        return f"{subject} is a very strong candidate for this program."
    elif score >= 60:
        return f"{subject} meets the main requirements of this program."
    elif score >= 45:
        return f"{subject} can apply to this program, subject to a few conditions."
    return f"{subject} is eligible, but the fit with this program is weak."


def _trl_range(program: FundingProgram) -> str:
    low = program.trl_min if program.trl_min is not None else 1
    high = program.trl_max if program.trl_max is not None else 9
    return f"TRL {low}-{high}"


def reason_text(code: str, org: Organization, program: FundingProgram) -> Optional[str]:
    """Sentence for one reason code, or None for codes that need no explanation"""
    org_trl = org.technology_readiness_level
    if code == "SECTOR_MATCH":
        return "The program targets your industry sector."
    if code == "CROSS_INDUSTRY_HIGH_RELEVANCE":
        return "The program's sector is closely related to your industry."
    if code == "CROSS_INDUSTRY_MEDIUM_RELEVANCE":
        return "The program's sector is indirectly related to your industry."
    if code == "TECHNOLOGY_KEYWORD_MATCH":
        return "The program title mentions one of your key technologies."
    if code == "RESEARCH_FOCUS_MATCH":
        return "The program covers one of your research focus areas."
    if code == "TRL_PERFECT_MATCH":
        return f"Your technology readiness (TRL {org_trl}) is within the program's {_trl_range(program)} range."
    if code == "TRL_NO_REQUIREMENT":
        return "The program has no technology readiness requirement."
    if code == "TRL_NOT_PROVIDED":
        return "Add your technology readiness level to your profile for a more accurate match."
    if code.startswith("TRL_TOO_LOW"):
        return f"Your TRL {org_trl} is below the program's {_trl_range(program)} range."
    if code.startswith("TRL_TOO_HIGH"):
        return f"Your TRL {org_trl} is above the program's {_trl_range(program)} range."
    if code == "CERT_NOT_REQUIRED":
        return "No certifications are required."
    if code == "CERT_FULL_MATCH":
        return "You hold every certification the program requires."
    if code == "CERT_PARTIAL":
        missing = sorted(program.certification_requirements - org.certifications)
        return f"You hold some of the required certifications; missing: {', '.join(missing)}."
    if code == "CERT_MISSING":
        return f"The program requires certifications you don't hold: {', '.join(sorted(program.certification_requirements))}."
    if code == "BUDGET_FIT":
        return "The program's funding size matches your organization's scale."
    if code == "BUDGET_NEAR":
        return "The program's funding size is close to your organization's scale."
    if code in ("BUDGET_STRETCH", "BUDGET_MISMATCH"):
        return "The program's funding size differs substantially from your organization's scale."
    if code == "RD_EXPERIENCE_SUFFICIENT":
        return "Your R&D track record meets the program's expected level."
    if code in ("RD_EXPERIENCE_SLIGHTLY_LOW", "RD_EXPERIENCE_LOW", "RD_EXPERIENCE_INSUFFICIENT"):
        return "The program usually expects more R&D experience than your profile shows."
    return None


# Reason codes reported as concerns rather than positives
CONCERN_CODES = {
    "TRL_TOO_LOW_MODERATE", "TRL_TOO_LOW_FAR", "TRL_TOO_HIGH_MODERATE", "TRL_TOO_HIGH_FAR",
    "CERT_MISSING", "CERT_PARTIAL", "BUDGET_STRETCH", "BUDGET_MISMATCH",
    "RD_EXPERIENCE_LOW", "RD_EXPERIENCE_INSUFFICIENT",
}


def generate_explanation(
    candidate: MatchCandidate,
    organization: Organization,
    program: FundingProgram,
    today: Optional[date] = None,
) -> MatchExplanation:
    """
    Build a rule-based explanation for a scored candidate.

    Args:
        candidate: Scored match (reason codes and warnings)
        organization: The organization that was matched
        program: The matched program
        today: Reference date for deadline recommendations
    """
    today = today or date.today()
    reasons = []
    warnings = list(candidate.warnings)

    for code in candidate.reasons:
        text = reason_text(code, organization, program)
        if not text:
            continue
        if code in CONCERN_CODES:
            warnings.append(text)
        else:
            reasons.append(text)

    recommendations = []
    if candidate.total_score >= 80:
        recommendations.append("This program is an excellent fit. Consider applying early.")
    elif candidate.total_score >= 60:
        recommendations.append("Review the announcement and prepare an application.")
    elif candidate.total_score >= 45:
        recommendations.append("Check the detailed eligibility conditions before applying.")

    if program.deadline and program.deadline >= today:
        days_left = (program.deadline - today).days
        if days_left <= DEADLINE_SOON_DAYS:
            recommendations.append(f"The deadline is in {days_left} days. Start preparing documents now.")

    return MatchExplanation(
        summary=generate_summary(candidate.total_score, organization),
        reasons=reasons or ["Your organization is eligible to apply to this program."],
        warnings=warnings,
        recommendations=recommendations,
    )
