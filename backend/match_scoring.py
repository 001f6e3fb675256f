"""
Relevance scoring for organization/program pairs.

Pure and deterministic: the only input besides the pair is the injected
Taxonomy. Components and ceilings:
- Industry match (30 pts max) - relevance coefficient x 30, plus keyword bonus
- TRL compatibility (20 pts max) - graduated by distance from the program range
- Certification fit (20 pts max) - share of required certifications held
- Budget fit (15 pts max) - revenue scale vs program budget scale
- Experience fit (15 pts max) - R&D track record vs program difficulty

Total max score: 100 points (30 + 20 + 20 + 15 + 15)

The industry relevance coefficient is also the gating signal: callers check
it against the relevance threshold before calling score().
"""

from typing import List, Optional, Tuple

from match_models import (
    COMPONENT_WEIGHTS,
    ComponentScores,
    FundingProgram,
    Organization,
    RDExperienceLevel,
)
from taxonomy_service import Taxonomy, normalize_keyword

# KRW scale boundaries shared by revenue and program budget: 1B, 10B, 50B, 100B
SCALE_BOUNDARIES = [1_000_000_000, 10_000_000_000, 50_000_000_000, 100_000_000_000]

KEYWORD_BONUS_PER_MATCH = 2
KEYWORD_BONUS_MAX = 5

# Points by TRL distance outside the program range (index = distance - 1)
TRL_BELOW_RANGE_POINTS = [12, 6, 3]
TRL_ABOVE_RANGE_POINTS = [15, 10, 5]

BUDGET_POINTS_BY_DISTANCE = [15, 10, 5]
BUDGET_UNKNOWN_POINTS = 8

EXPERIENCE_POINTS_BY_GAP = [15, 8, 3, 0]

HIGH_RELEVANCE_CUTOFF = 0.7


def scale_bucket(amount: float) -> int:
    """Bucket index 0-4 on SCALE_BOUNDARIES"""
    for index, boundary in enumerate(SCALE_BOUNDARIES):
        if amount < boundary:
            return index
    return len(SCALE_BOUNDARIES)


def infer_program_difficulty(program: FundingProgram) -> RDExperienceLevel:
    """Required R&D experience; inferred from budget size when the program doesn't state it"""
    if program.required_rd_experience is not None:
        return program.required_rd_experience
    if not program.budget:
        return RDExperienceLevel.MEDIUM
    if program.budget >= 10_000_000_000:
        return RDExperienceLevel.HIGH
    if program.budget >= 1_000_000_000:
        return RDExperienceLevel.MEDIUM
    return RDExperienceLevel.LOW


class RelevanceScorer:
    """Computes industry relevance and the five component scores."""

    def __init__(self, taxonomy: Taxonomy):
        self.taxonomy = taxonomy

    def industry_relevance(self, organization: Organization, program: FundingProgram) -> float:
        """
        Cross-industry relevance coefficient of the program for this organization.

        The program sector must already be resolved.
        """
        return self.taxonomy.relevance(organization.industry_sector, program.industry_sector)

    def score(
        self,
        organization: Organization,
        program: FundingProgram,
        relevance: Optional[float] = None,
    ) -> Tuple[ComponentScores, List[str]]:
        """
        Score a pair that already passed eligibility and the relevance gate.

        Args:
            organization: Applicant profile
            program: Program with a resolved industry sector
            relevance: Precomputed relevance coefficient (looked up if omitted)

        Returns:
            (component scores, reason codes)
        """
        if relevance is None:
            relevance = self.industry_relevance(organization, program)

        reasons: List[str] = []
        industry = self._score_industry(organization, program, relevance, reasons)
        trl = self._score_trl(organization, program, reasons)
        certifications = self._score_certifications(organization, program, reasons)
        budget = self._score_budget(organization, program, reasons)
        experience = self._score_experience(organization, program, reasons)

        return ComponentScores(
            industry=industry,
            trl=trl,
            certifications=certifications,
            budget=budget,
            experience=experience,
        ), reasons

    def _score_industry(
        self, organization: Organization, program: FundingProgram, relevance: float, reasons: List[str]
    ) -> int:
        ceiling = COMPONENT_WEIGHTS["industry"]
        points = int(round(ceiling * relevance))

        if relevance >= 1.0:
            reasons.append("SECTOR_MATCH")
        elif relevance >= HIGH_RELEVANCE_CUTOFF:
            reasons.append("CROSS_INDUSTRY_HIGH_RELEVANCE")
        else:
            reasons.append("CROSS_INDUSTRY_MEDIUM_RELEVANCE")

        # Keyword bonus: org technologies / research areas named in the program text
        program_text = normalize_keyword(f"{program.title} {program.category or ''}")
        matched_technologies = {
            normalize_keyword(term) for term in organization.key_technologies
            if normalize_keyword(term) and normalize_keyword(term) in program_text
        }
        matched_focus = {
            normalize_keyword(term) for term in organization.research_focus_areas
            if normalize_keyword(term) and normalize_keyword(term) in program_text
        }
        if matched_technologies:
            reasons.append("TECHNOLOGY_KEYWORD_MATCH")
        if matched_focus:
            reasons.append("RESEARCH_FOCUS_MATCH")

        matches = len(matched_technologies | matched_focus)
        bonus = min(KEYWORD_BONUS_MAX, matches * KEYWORD_BONUS_PER_MATCH)
        return min(ceiling, points + bonus)

    def _score_trl(self, organization: Organization, program: FundingProgram, reasons: List[str]) -> int:
        org_trl = organization.technology_readiness_level

        if program.trl_min is None and program.trl_max is None:
            reasons.append("TRL_NO_REQUIREMENT")
            return 15
        if org_trl is None:
            reasons.append("TRL_NOT_PROVIDED")
            return 5

        low = program.trl_min if program.trl_min is not None else 1
        high = program.trl_max if program.trl_max is not None else 9

        if low <= org_trl <= high:
            reasons.append("TRL_PERFECT_MATCH")
            return COMPONENT_WEIGHTS["trl"]

        # Only reachable in historical mode, where the eligibility window is widened
        if org_trl < low:
            distance = low - org_trl
            table, prefix = TRL_BELOW_RANGE_POINTS, "TRL_TOO_LOW"
        else:
            distance = org_trl - high
            table, prefix = TRL_ABOVE_RANGE_POINTS, "TRL_TOO_HIGH"

        if distance == 1:
            reasons.append(f"{prefix}_CLOSE")
        elif distance == 2:
            reasons.append(f"{prefix}_MODERATE")
        else:
            reasons.append(f"{prefix}_FAR")
        return table[distance - 1] if distance <= len(table) else 0

    def _score_certifications(self, organization: Organization, program: FundingProgram, reasons: List[str]) -> int:
        required = program.certification_requirements
        if not required:
            reasons.append("CERT_NOT_REQUIRED")
            return COMPONENT_WEIGHTS["certifications"]

        held = len(required & organization.certifications)
        if held == len(required):
            reasons.append("CERT_FULL_MATCH")
        elif held:
            reasons.append("CERT_PARTIAL")
        else:
            reasons.append("CERT_MISSING")
        return int(round(COMPONENT_WEIGHTS["certifications"] * held / len(required)))

    def _score_budget(self, organization: Organization, program: FundingProgram, reasons: List[str]) -> int:
        if organization.revenue is None or not program.budget:
            reasons.append("BUDGET_UNKNOWN")
            return BUDGET_UNKNOWN_POINTS

        distance = abs(scale_bucket(organization.revenue) - scale_bucket(program.budget))
        if distance == 0:
            reasons.append("BUDGET_FIT")
        elif distance == 1:
            reasons.append("BUDGET_NEAR")
        elif distance == 2:
            reasons.append("BUDGET_STRETCH")
        else:
            reasons.append("BUDGET_MISMATCH")
        return BUDGET_POINTS_BY_DISTANCE[distance] if distance < len(BUDGET_POINTS_BY_DISTANCE) else 0

    def _score_experience(self, organization: Organization, program: FundingProgram, reasons: List[str]) -> int:
        required = infer_program_difficulty(program)
        gap = required.rank - organization.rd_experience_level.rank

        if gap <= 0:
            reasons.append("RD_EXPERIENCE_SUFFICIENT")
            return EXPERIENCE_POINTS_BY_GAP[0]
        if gap == 1:
            reasons.append("RD_EXPERIENCE_SLIGHTLY_LOW")
        elif gap == 2:
            reasons.append("RD_EXPERIENCE_LOW")
        else:
            reasons.append("RD_EXPERIENCE_INSUFFICIENT")
        return EXPERIENCE_POINTS_BY_GAP[gap]
