"""
Tests for matching settings and error types
"""

import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from match_settings import DEFAULT_TAXONOMY_PATH, MatchingSettings, load_settings
from matching_errors import ConfigurationError, InvalidInputError

ENV_VARS = [
    "RELEVANCE_THRESHOLD",
    "MINIMUM_MATCH_SCORE",
    "CROSS_INDUSTRY_WARNING_CEILING",
    "DEFAULT_MATCH_LIMIT",
    "TAXONOMY_PATH",
    "ANTHROPIC_API_KEY",
    "EXPLANATION_MODEL",
    "AI_DAILY_BUDGET_USD",
    "AI_RATE_LIMIT_PER_MINUTE",
    "EXPLANATION_CACHE_TTL_SECONDS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = load_settings()
    assert settings.relevance_threshold == 0.4
    assert settings.minimum_match_score == 45
    assert settings.cross_industry_warning_ceiling == 0.6
    assert settings.default_match_limit == 10
    assert settings.taxonomy_path == DEFAULT_TAXONOMY_PATH
    assert settings.anthropic_api_key is None
    assert settings.ai_daily_budget_usd == 5.0
    assert settings == MatchingSettings()


def test_values_from_environment(clean_env):
    clean_env.setenv("RELEVANCE_THRESHOLD", "0.5")
    clean_env.setenv("MINIMUM_MATCH_SCORE", "30")
    clean_env.setenv("DEFAULT_MATCH_LIMIT", "25")
    clean_env.setenv("TAXONOMY_PATH", "/etc/connect/taxonomy.json")
    clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")

    settings = load_settings()
    assert settings.relevance_threshold == 0.5
    assert settings.minimum_match_score == 30
    assert settings.default_match_limit == 25
    assert settings.taxonomy_path == "/etc/connect/taxonomy.json"
    assert settings.anthropic_api_key == "sk-ant-test"


def test_blank_values_use_defaults(clean_env):
    clean_env.setenv("RELEVANCE_THRESHOLD", "  ")
    clean_env.setenv("ANTHROPIC_API_KEY", "")
    settings = load_settings()
    assert settings.relevance_threshold == 0.4
    assert settings.anthropic_api_key is None


@pytest.mark.parametrize("name, value, message", [
    ("RELEVANCE_THRESHOLD", "high", "expected a number"),
    ("MINIMUM_MATCH_SCORE", "45.5", "expected an integer"),
    ("RELEVANCE_THRESHOLD", "1.5", "between 0 and 1"),
    ("MINIMUM_MATCH_SCORE", "150", "between 0 and 100"),
    ("MINIMUM_MATCH_SCORE", "-1", "between 0 and 100"),
    ("CROSS_INDUSTRY_WARNING_CEILING", "0.3", "RELEVANCE_THRESHOLD"),
    ("DEFAULT_MATCH_LIMIT", "0", "at least 1"),
    ("AI_DAILY_BUDGET_USD", "-5", "must not be negative"),
    ("AI_RATE_LIMIT_PER_MINUTE", "0", "at least 1"),
])
def test_invalid_environment_rejected(clean_env, name, value, message):
    clean_env.setenv(name, value)
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings()
    assert message in str(excinfo.value)
    assert excinfo.value.source == name
    assert str(excinfo.value).startswith(f"{name}: ")


def test_with_overrides_revalidates():
    settings = MatchingSettings()
    assert settings.with_overrides(minimum_match_score=60).minimum_match_score == 60
    assert settings.minimum_match_score == 45

    with pytest.raises(ConfigurationError):
        settings.with_overrides(relevance_threshold=0.7)    # above the warning ceiling


def test_error_types():
    error = InvalidInputError("trlMin must be an integer 1-9", record_id="prog-1", field="trlMin")
    assert isinstance(error, ValueError)
    assert error.record_id == "prog-1"
    assert error.field == "trlMin"

    plain = ConfigurationError("bad value")
    assert plain.source is None
    assert str(plain) == "bad value"
