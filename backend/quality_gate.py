"""
Quality gate: two independent thresholds applied in a fixed order.

1. Relevance floor - checked before scoring; a candidate below it is never scored.
2. Minimum score floor - checked after scoring; suppresses technically eligible
   but poorly matched programs.
"""

from typing import Optional

from match_settings import MatchingSettings


class QualityGate:
    def __init__(self, relevance_threshold: float = 0.4, minimum_match_score: int = 45):
        self.relevance_threshold = relevance_threshold
        self.minimum_match_score = minimum_match_score

    @classmethod
    def from_settings(cls, settings: MatchingSettings, minimum_score: Optional[int] = None) -> "QualityGate":
        """Gate from configuration, with an optional per-request minimum score"""
        return cls(
            relevance_threshold=settings.relevance_threshold,
            minimum_match_score=settings.minimum_match_score if minimum_score is None else minimum_score,
        )

    def passes_relevance(self, relevance: float) -> bool:
        """Inclusive at the threshold: exactly 0.4 passes a 0.4 floor"""
        return relevance >= self.relevance_threshold

    def passes_minimum_score(self, total_score: int) -> bool:
        return total_score >= self.minimum_match_score
