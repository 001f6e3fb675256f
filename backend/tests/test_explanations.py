"""
Tests for match explanations

Verifies that:
- Rule-based explanations follow the score bands and route concerns to warnings
- The LLM path parses JSON (including markdown fences) and caches results
- Every failure path (no key, bad JSON, API error, rate limit, budget) falls
  back to the rule-based explanation
"""

import sys
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from explanation_service import ExplanationService, estimate_cost
from match_explainer import generate_explanation, generate_summary
from match_models import (
    ComponentScores,
    FundingProgram,
    IndustrySector,
    MatchCandidate,
    Organization,
    OrganizationType,
    RDExperienceLevel,
)
from match_ranker import CROSS_INDUSTRY_WARNING
from match_settings import MatchingSettings

TODAY = date(2025, 6, 1)


# ============================================================================
# TEST DATA
# ============================================================================

ORG = Organization(
    id="org-1",
    organization_type=OrganizationType.COMPANY,
    industry_sector=IndustrySector.CULTURAL,
    technology_readiness_level=6,
    revenue=5_000_000_000,
    certifications=frozenset({"벤처기업"}),
    rd_experience_level=RDExperienceLevel.MEDIUM,
    name="한빛콘텐츠",
)

PROGRAM = FundingProgram(
    id="prog-1",
    title="K-콘텐츠 제작 기술개발",
    agency="KOCCA",
    industry_sector=IndustrySector.CONTENT,
    trl_min=5,
    trl_max=8,
    budget=3_000_000_000,
    deadline=date(2025, 6, 20),
    certification_requirements=frozenset({"벤처기업", "ISO9001"}),
)

LLM_JSON = (
    '{"summary": "Strong fit for the K-content program.", '
    '"reasons": ["Sector match", "TRL within range"], '
    '"warnings": [], '
    '"recommendations": ["Apply before the deadline"]}'
)


def make_candidate(total_score: int = 80, reasons=None, warnings=None) -> MatchCandidate:
    components = ComponentScores(industry=30, trl=20, certifications=10, budget=15, experience=15)
    return MatchCandidate(
        organization_id=ORG.id,
        program_id=PROGRAM.id,
        industry_relevance_score=1.0,
        component_scores=components,
        total_score=total_score,
        warnings=warnings or [],
        reasons=reasons if reasons is not None else ["SECTOR_MATCH", "TRL_PERFECT_MATCH", "CERT_PARTIAL"],
        deadline=PROGRAM.deadline,
    )


class FakeClock:
    """Controllable time source"""

    def __init__(self, start: datetime = datetime(2025, 6, 1, 9, 0)):
        self.now = start.timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_client(text: str = LLM_JSON, input_tokens: int = 1000, output_tokens: int = 500) -> MagicMock:
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    response.usage.input_tokens = input_tokens
    response.usage.output_tokens = output_tokens
    client = MagicMock()
    client.messages.create.return_value = response
    return client


def make_service(client=None, clock=None, **settings) -> ExplanationService:
    return ExplanationService(MatchingSettings(**settings), client=client, clock=clock or FakeClock())


# ============================================================================
# TESTS: Rule-based explanations
# ============================================================================

def test_summary_bands():
    assert "very strong" in generate_summary(85, ORG)
    assert "main requirements" in generate_summary(65, ORG)
    assert "few conditions" in generate_summary(50, ORG)
    assert "weak" in generate_summary(30, ORG)

    institute = Organization(id="org-2", organization_type=OrganizationType.RESEARCH_INSTITUTE,
                             industry_sector=IndustrySector.ICT)
    assert generate_summary(85, institute).startswith("Your institution")
    assert generate_summary(85, ORG).startswith("Your company")


def test_rule_explanation_routes_concerns_to_warnings():
    candidate = make_candidate(warnings=[CROSS_INDUSTRY_WARNING])
    explanation = generate_explanation(candidate, ORG, PROGRAM, today=TODAY)

    assert explanation.source == "rules"
    assert len(explanation.reasons) == 2
    assert explanation.warnings[0] == CROSS_INDUSTRY_WARNING
    assert any("ISO9001" in warning for warning in explanation.warnings)
    assert "Consider applying early" in explanation.recommendations[0]
    assert any("19 days" in rec for rec in explanation.recommendations)


def test_rule_explanation_default_reason():
    explanation = generate_explanation(make_candidate(total_score=50, reasons=[]), ORG, PROGRAM, today=TODAY)
    assert explanation.reasons == ["Your organization is eligible to apply to this program."]
    assert explanation.recommendations[0].startswith("Check the detailed eligibility")


# ============================================================================
# TESTS: LLM path
# ============================================================================

def test_no_api_key_uses_rules():
    service = make_service()
    assert service.client is None

    explanation = service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert explanation.source == "rules"
    assert service.get_budget_status()["llm_enabled"] is False


def test_llm_explanation():
    client = make_client()
    service = make_service(client=client)

    explanation = service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert explanation.source == "llm"
    assert explanation.summary == "Strong fit for the K-content program."
    assert explanation.reasons == ["Sector match", "TRL within range"]
    assert service.stats["llm_requests"] == 1
    assert service.stats["total_tokens"] == 1500

    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-sonnet-4-20250514"
    assert kwargs["max_tokens"] == 1024
    assert "K-콘텐츠 제작 기술개발" in kwargs["messages"][0]["content"]


def test_markdown_fenced_json():
    service = make_service(client=make_client(text=f"```json\n{LLM_JSON}\n```"))
    assert service.explain(make_candidate(), ORG, PROGRAM, today=TODAY).source == "llm"


def test_invalid_json_falls_back():
    service = make_service(client=make_client(text="I think this is a great match!"))
    explanation = service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert explanation.source == "rules"
    assert service.stats["fallbacks"] == 1


def test_api_error_falls_back():
    client = MagicMock()
    client.messages.create.side_effect = RuntimeError("overloaded")
    service = make_service(client=client)

    explanation = service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert explanation.source == "rules"
    assert service.stats["fallbacks"] == 1

    # Fallbacks are not cached
    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert client.messages.create.call_count == 2


# ============================================================================
# TESTS: Cache
# ============================================================================

def test_cache_hit_and_expiry():
    client = make_client()
    clock = FakeClock()
    service = make_service(client=client, clock=clock, explanation_cache_ttl_seconds=3600)

    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert client.messages.create.call_count == 1
    assert service.stats["cache_hits"] == 1

    # A different score is a different cache entry
    service.explain(make_candidate(total_score=70), ORG, PROGRAM, today=TODAY)
    assert client.messages.create.call_count == 2

    clock.advance(3601)
    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert client.messages.create.call_count == 3


def test_clear_cache():
    client = make_client()
    service = make_service(client=client)
    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    service.clear_cache()
    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)
    assert client.messages.create.call_count == 2


# ============================================================================
# TESTS: Rate limit and budget
# ============================================================================

def test_rate_limit():
    client = make_client()
    clock = FakeClock()
    service = make_service(client=client, clock=clock, ai_rate_limit_per_minute=1)

    assert service.explain(make_candidate(total_score=80), ORG, PROGRAM, today=TODAY).source == "llm"
    assert service.explain(make_candidate(total_score=81), ORG, PROGRAM, today=TODAY).source == "rules"

    clock.advance(60)
    assert service.explain(make_candidate(total_score=82), ORG, PROGRAM, today=TODAY).source == "llm"
    assert client.messages.create.call_count == 2


def test_zero_budget_disables_llm():
    client = make_client()
    service = make_service(client=client, ai_daily_budget_usd=0)

    assert service.explain(make_candidate(), ORG, PROGRAM, today=TODAY).source == "rules"
    client.messages.create.assert_not_called()

    status = service.get_budget_status()
    assert status["percentage"] == 100.0
    assert status["remaining_usd"] == 0.0
    assert status["spent_usd"] == 0.0


def test_budget_exhausted_then_resets_next_day():
    # 1000 input + 500 output tokens = $0.0105 per request
    client = make_client()
    clock = FakeClock()
    service = make_service(client=client, clock=clock, ai_daily_budget_usd=0.01)

    assert service.explain(make_candidate(total_score=80), ORG, PROGRAM, today=TODAY).source == "llm"
    assert service.explain(make_candidate(total_score=81), ORG, PROGRAM, today=TODAY).source == "rules"

    status = service.get_budget_status()
    assert status["spent_usd"] == 0.0105
    assert status["remaining_usd"] == 0.0
    assert status["date"] == "2025-06-01"

    clock.advance(24 * 3600)
    assert service.get_budget_status()["spent_usd"] == 0.0
    assert service.explain(make_candidate(total_score=82), ORG, PROGRAM, today=TODAY).source == "llm"


def test_budget_status():
    service = make_service(client=make_client(), ai_daily_budget_usd=1.0)
    service.explain(make_candidate(), ORG, PROGRAM, today=TODAY)

    status = service.get_budget_status()
    assert status["daily_budget_usd"] == 1.0
    assert status["percentage"] == 1.05
    assert status["llm_enabled"] is True


def test_estimate_cost():
    assert estimate_cost(1000, 0) == 0.003
    assert estimate_cost(0, 1000) == 0.015
    assert round(estimate_cost(1000, 500), 6) == 0.0105
