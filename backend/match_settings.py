"""
Matching engine settings.

All tunables are read from the environment (after load_dotenv() in main.py)
and validated once at startup. A bad value raises ConfigurationError so the
service never starts with thresholds nobody intended.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from matching_errors import ConfigurationError

DEFAULT_TAXONOMY_PATH = str(Path(__file__).parent / "data" / "taxonomy.json")


@dataclass(frozen=True)
class MatchingSettings:
    """Validated matching configuration"""
    relevance_threshold: float = 0.4
    minimum_match_score: int = 45
    cross_industry_warning_ceiling: float = 0.6
    default_match_limit: int = 10
    taxonomy_path: str = DEFAULT_TAXONOMY_PATH
    anthropic_api_key: Optional[str] = None
    explanation_model: str = "claude-sonnet-4-20250514"
    ai_daily_budget_usd: float = 5.0
    ai_rate_limit_per_minute: int = 50
    explanation_cache_ttl_seconds: int = 86400

    def __post_init__(self):
        if not 0.0 <= self.relevance_threshold <= 1.0:
            raise ConfigurationError(
                f"must be between 0 and 1, got {self.relevance_threshold}", source="RELEVANCE_THRESHOLD"
            )
        if not 0 <= self.minimum_match_score <= 100:
            raise ConfigurationError(
                f"must be between 0 and 100, got {self.minimum_match_score}", source="MINIMUM_MATCH_SCORE"
            )
        if not self.relevance_threshold <= self.cross_industry_warning_ceiling <= 1.0:
            raise ConfigurationError(
                f"must be between RELEVANCE_THRESHOLD ({self.relevance_threshold}) and 1, "
                f"got {self.cross_industry_warning_ceiling}",
                source="CROSS_INDUSTRY_WARNING_CEILING",
            )
        if self.default_match_limit < 1:
            raise ConfigurationError(
                f"must be at least 1, got {self.default_match_limit}", source="DEFAULT_MATCH_LIMIT"
            )
        if self.ai_daily_budget_usd < 0:
            raise ConfigurationError(
                f"must not be negative, got {self.ai_daily_budget_usd}", source="AI_DAILY_BUDGET_USD"
            )
        if self.ai_rate_limit_per_minute < 1:
            raise ConfigurationError(
                f"must be at least 1, got {self.ai_rate_limit_per_minute}", source="AI_RATE_LIMIT_PER_MINUTE"
            )
        if self.explanation_cache_ttl_seconds < 0:
            raise ConfigurationError(
                f"must not be negative, got {self.explanation_cache_ttl_seconds}",
                source="EXPLANATION_CACHE_TTL_SECONDS",
            )

    def with_overrides(self, **changes) -> "MatchingSettings":
        """Copy with some fields replaced (validation runs again)"""
        return replace(self, **changes)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"expected a number, got {raw!r}", source=name)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"expected an integer, got {raw!r}", source=name)


def load_settings() -> MatchingSettings:
    """
    Build MatchingSettings from environment variables.

    Returns:
        Validated settings

    Raises:
        ConfigurationError: if any variable is malformed or out of range
    """
    return MatchingSettings(
        relevance_threshold=_env_float("RELEVANCE_THRESHOLD", 0.4),
        minimum_match_score=_env_int("MINIMUM_MATCH_SCORE", 45),
        cross_industry_warning_ceiling=_env_float("CROSS_INDUSTRY_WARNING_CEILING", 0.6),
        default_match_limit=_env_int("DEFAULT_MATCH_LIMIT", 10),
        taxonomy_path=os.getenv("TAXONOMY_PATH") or DEFAULT_TAXONOMY_PATH,
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
        explanation_model=os.getenv("EXPLANATION_MODEL", "claude-sonnet-4-20250514"),
        ai_daily_budget_usd=_env_float("AI_DAILY_BUDGET_USD", 5.0),
        ai_rate_limit_per_minute=_env_int("AI_RATE_LIMIT_PER_MINUTE", 50),
        explanation_cache_ttl_seconds=_env_int("EXPLANATION_CACHE_TTL_SECONDS", 86400),
    )
