"""
Ordering and warnings for gated match candidates.

Sort order: total score descending, then deadline ascending (undated
programs after dated ones), then program id ascending. The limit is applied
only after the full candidate set has been gated and sorted.
"""

from datetime import date
from typing import List, Optional, Tuple

from match_models import FundingProgram, MatchCandidate

CROSS_INDUSTRY_WARNING = "Cross-industry indirect relevance - verify program details"
BUDGET_UNDETERMINED_WARNING = "Program budget not yet determined - check the announcement for funding size"
DEADLINE_TBA_WARNING = "Application deadline to be announced"
DEADLINE_PASSED_WARNING = "Application deadline has passed - shown for historical reference"


class MatchRanker:
    def __init__(self, relevance_threshold: float = 0.4, warning_ceiling: float = 0.6):
        self.relevance_threshold = relevance_threshold
        self.warning_ceiling = warning_ceiling

    @staticmethod
    def _sort_key(candidate: MatchCandidate) -> Tuple[int, date, str]:
        return (
            -candidate.total_score,
            candidate.deadline or date.max,
            candidate.program_id,
        )

    def rank(self, candidates: List[MatchCandidate], limit: Optional[int] = None) -> List[MatchCandidate]:
        """
        Sort candidates and truncate to limit.

        Args:
            candidates: Every candidate that passed both gates
            limit: Top-N to keep; None keeps all, <= 0 returns nothing
        """
        ordered = sorted(candidates, key=self._sort_key)
        if limit is None:
            return ordered
        if limit <= 0:
            return []
        return ordered[:limit]

    def warnings_for(self, relevance: float, program: FundingProgram, today: Optional[date] = None) -> List[str]:
        """Warnings surfaced to the explanation layer for one candidate"""
        today = today or date.today()
        warnings = []

        if self.relevance_threshold <= relevance < self.warning_ceiling:
            warnings.append(CROSS_INDUSTRY_WARNING)
        if not program.budget:
            warnings.append(BUDGET_UNDETERMINED_WARNING)
        if program.deadline is None:
            warnings.append(DEADLINE_TBA_WARNING)
        elif program.deadline < today:
            warnings.append(DEADLINE_PASSED_WARNING)

        return warnings
