"""
Organization-to-Program Matching Service

Runs one organization against a batch of funding programs and returns the
ranked matches. Pipeline per request:

- Parse records (bad program records are logged and skipped)
- Deduplicate re-announced programs
- Resolve each program's industry sector (taxonomy keyword lookup if absent)
- Eligibility filter (hard gate)
- Relevance floor (before any scoring)
- Component scoring
- Minimum score floor
- Rank, then truncate to the limit

The taxonomy and settings are injected; the service holds no mutable state
between requests, so a reload just builds a new service.
"""

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

from grant_filters import EligibilityFilter, deduplicate_programs
from match_models import FundingProgram, MatchCandidate, Organization
from match_ranker import MatchRanker
from match_scoring import RelevanceScorer
from match_settings import MatchingSettings
from matching_errors import InvalidInputError
from quality_gate import QualityGate
from taxonomy_service import Taxonomy

logger = logging.getLogger(__name__)

OrganizationInput = Union[Organization, Dict[str, Any]]
ProgramInput = Union[FundingProgram, Dict[str, Any]]


@dataclass
class MatchingStats:
    """Counters for one generate_matches() call"""
    total_programs: int = 0
    duplicates_removed: int = 0
    invalid: int = 0
    ineligible: int = 0
    below_relevance: int = 0
    below_minimum_score: int = 0
    matched: int = 0
    processing_time_ms: int = 0
    taxonomy_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MatchingResults:
    matches: List[MatchCandidate] = field(default_factory=list)
    stats: MatchingStats = field(default_factory=MatchingStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": [match.to_dict() for match in self.matches],
            "stats": self.stats.to_dict(),
        }


class OrganizationMatchingService:
    """
    Matching engine entry point: eligibility, relevance gate, scoring,
    minimum-score gate and ranking for one organization at a time.
    """

    def __init__(
        self,
        taxonomy: Taxonomy,
        settings: Optional[MatchingSettings] = None,
        scorer: Optional[RelevanceScorer] = None,
        eligibility: Optional[EligibilityFilter] = None,
        today: Optional[date] = None,
    ):
        self.taxonomy = taxonomy
        self.settings = settings or MatchingSettings()
        self.scorer = scorer or RelevanceScorer(taxonomy)
        self.eligibility = eligibility or EligibilityFilter(today=today)
        self.ranker = MatchRanker(
            relevance_threshold=self.settings.relevance_threshold,
            warning_ceiling=self.settings.cross_industry_warning_ceiling,
        )
        self._today = today

    # ------------------------------------------------------------------
    # Record handling
    # ------------------------------------------------------------------

    def parse_organization(self, organization: OrganizationInput) -> Organization:
        if isinstance(organization, Organization):
            return organization
        return Organization.from_dict(organization)

    def parse_program(self, program: ProgramInput) -> FundingProgram:
        if isinstance(program, FundingProgram):
            return program
        return FundingProgram.from_dict(program)

    def resolve_sector(self, program: FundingProgram) -> FundingProgram:
        """
        Ensure the program has an industry sector.

        Raises:
            InvalidInputError: no sector given and none found in category or title
        """
        if program.industry_sector is not None:
            return program

        sector = self.taxonomy.find_sector(program.category) or self.taxonomy.find_sector(program.title)
        if sector is None:
            raise InvalidInputError(
                "Program has no industry sector and none could be inferred from category/title",
                record_id=program.id,
                field="industrySector",
            )
        logger.debug(f"[MATCHING] Inferred sector {sector.value} for program {program.id}")
        return replace(program, industry_sector=sector)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def generate_matches(
        self,
        organization: OrganizationInput,
        programs: Iterable[ProgramInput],
        limit: Optional[int] = None,
        include_expired: bool = False,
        minimum_score: Optional[int] = None,
    ) -> MatchingResults:
        """
        Match one organization against a batch of programs.

        Args:
            organization: Organization model or raw dict
            programs: Program models or raw dicts
            limit: Top-N to return (defaults to DEFAULT_MATCH_LIMIT)
            include_expired: Historical mode (expired programs, relaxed eligibility)
            minimum_score: Per-request override of MINIMUM_MATCH_SCORE

        Returns:
            MatchingResults with ranked matches and pipeline counters

        Raises:
            InvalidInputError: invalid organization or override values
        """
        start_time = time.time()

        org = self.parse_organization(organization)
        if minimum_score is not None and not 0 <= minimum_score <= 100:
            raise InvalidInputError(f"minimum_score must be between 0 and 100, got {minimum_score}",
                                    field="minimum_score")
        if limit is None:
            limit = self.settings.default_match_limit

        gate = QualityGate.from_settings(self.settings, minimum_score)
        stats = MatchingStats(taxonomy_version=self.taxonomy.version)

        parsed: List[FundingProgram] = []
        for raw in programs:
            stats.total_programs += 1
            try:
                parsed.append(self.parse_program(raw))
            except InvalidInputError as e:
                stats.invalid += 1
                record_id = e.record_id or (raw.get("id") if isinstance(raw, dict) else None) or "unknown"
                logger.warning(f"[MATCHING] Skipping invalid program {record_id}: {e}")

        unique = deduplicate_programs(parsed)
        stats.duplicates_removed = len(parsed) - len(unique)

        candidates: List[MatchCandidate] = []
        for program in unique:
            try:
                program = self.resolve_sector(program)
            except InvalidInputError as e:
                stats.invalid += 1
                logger.warning(f"[MATCHING] Skipping invalid program {program.id}: {e}")
                continue

            eligible, reason = self.eligibility.check(org, program, include_expired=include_expired)
            if not eligible:
                stats.ineligible += 1
                logger.debug(f"[MATCHING] {program.id} ineligible for {org.id}: {reason}")
                continue

            relevance = self.scorer.industry_relevance(org, program)
            if not gate.passes_relevance(relevance):
                stats.below_relevance += 1
                logger.debug(f"[MATCHING] {program.id} below relevance floor ({relevance:.2f})")
                continue

            candidate = self._build_candidate(org, program, relevance)
            if not gate.passes_minimum_score(candidate.total_score):
                stats.below_minimum_score += 1
                logger.debug(f"[MATCHING] {program.id} below minimum score ({candidate.total_score})")
                continue

            candidates.append(candidate)

        matches = self.ranker.rank(candidates, limit)
        stats.matched = len(matches)
        stats.processing_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"[MATCHING] Organization {org.id}: {len(matches)} matches from {stats.total_programs} programs "
            f"(duplicates={stats.duplicates_removed}, invalid={stats.invalid}, ineligible={stats.ineligible}, "
            f"below_relevance={stats.below_relevance}, below_minimum={stats.below_minimum_score}) "
            f"in {stats.processing_time_ms}ms"
        )
        return MatchingResults(matches=matches, stats=stats)

    def score_pair(
        self,
        organization: OrganizationInput,
        program: ProgramInput,
        include_expired: bool = False,
    ) -> Optional[MatchCandidate]:
        """
        Score a single pair regardless of the minimum score.

        Returns:
            The candidate, or None when the pair fails eligibility or the relevance floor

        Raises:
            InvalidInputError: invalid organization or program record
        """
        org = self.parse_organization(organization)
        resolved = self.resolve_sector(self.parse_program(program))

        eligible, _ = self.eligibility.check(org, resolved, include_expired=include_expired)
        if not eligible:
            return None

        relevance = self.scorer.industry_relevance(org, resolved)
        if not QualityGate.from_settings(self.settings).passes_relevance(relevance):
            return None
        return self._build_candidate(org, resolved, relevance)

    def _build_candidate(self, org: Organization, program: FundingProgram, relevance: float) -> MatchCandidate:
        components, reasons = self.scorer.score(org, program, relevance)
        return MatchCandidate(
            organization_id=org.id,
            program_id=program.id,
            industry_relevance_score=relevance,
            component_scores=components,
            total_score=components.total,
            warnings=self.ranker.warnings_for(relevance, program, self._today),
            reasons=reasons,
            deadline=program.deadline,
        )
