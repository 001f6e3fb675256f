"""
LLM Match Explanations

Generates natural-language explanations for scored matches with Claude,
falling back to the rule-based explainer whenever the LLM path is not
available.

Features:
- In-memory cache keyed by (organization, program, total score) with TTL
- Per-minute request rate limit
- Daily USD budget estimated from token usage
- JSON response parsing (tolerates markdown fences)
- Rule-based fallback on API errors, bad JSON, rate limit or exhausted budget
"""

import json
import logging
import threading
import time
from collections import deque
from datetime import date, datetime
from typing import Any, Callable, Deque, Dict, Optional, Tuple

import anthropic

from match_explainer import MatchExplanation, generate_explanation
from match_models import FundingProgram, MatchCandidate, Organization
from match_settings import MatchingSettings

logger = logging.getLogger(__name__)

# Sonnet pricing, USD per 1K tokens
COST_PER_1K_INPUT_TOKENS = 0.003
COST_PER_1K_OUTPUT_TOKENS = 0.015

# Log a warning once daily spend crosses this share of the budget
BUDGET_ALERT_RATIO = 0.8

RATE_WINDOW_SECONDS = 60

SYSTEM_PROMPT = """You are an advisor for Korean government R&D funding programs. Explain to an applicant organization why a funding program was recommended to them, based on the match analysis you are given. Be factual and concise; never invent eligibility rules that are not in the input.

Always respond with valid JSON matching this schema:
{
    "summary": "<one sentence verdict>",
    "reasons": ["<reason 1>", "<reason 2>", ...],
    "warnings": ["<concern 1>", ...],
    "recommendations": ["<action item 1>", ...]
}"""


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    """USD cost of one request"""
    return (input_tokens / 1000) * COST_PER_1K_INPUT_TOKENS + (output_tokens / 1000) * COST_PER_1K_OUTPUT_TOKENS


class ExplanationService:
    """
    Claude-backed explanation generator with cache, rate limit and budget.
    Without an API key every call returns the rule-based explanation.
    """

    def __init__(
        self,
        settings: MatchingSettings,
        client: Any = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.model = settings.explanation_model
        if client is not None:
            self.client = client
        elif settings.anthropic_api_key:
            self.client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
        else:
            self.client = None
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[Tuple[str, str, int], Tuple[float, MatchExplanation]] = {}
        self._request_times: Deque[float] = deque()
        self._budget_day: date = self._today()
        self._spent_usd = 0.0
        self._alerted = False

        self.stats = {
            "llm_requests": 0,
            "cache_hits": 0,
            "fallbacks": 0,
            "total_tokens": 0,
        }

    def _today(self) -> date:
        return datetime.fromtimestamp(self._clock()).date()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_key(self, candidate: MatchCandidate) -> Tuple[str, str, int]:
        return (candidate.organization_id, candidate.program_id, candidate.total_score)

    def _get_cached(self, key: Tuple[str, str, int]) -> Optional[MatchExplanation]:
        entry = self._cache.get(key)
        if not entry:
            return None
        stored_at, explanation = entry
        if self._clock() - stored_at > self.settings.explanation_cache_ttl_seconds:
            del self._cache[key]
            return None
        return explanation

    def clear_cache(self):
        with self._lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Rate limit and budget
    # ------------------------------------------------------------------

    def _acquire_rate_slot(self) -> bool:
        now = self._clock()
        while self._request_times and now - self._request_times[0] >= RATE_WINDOW_SECONDS:
            self._request_times.popleft()
        if len(self._request_times) >= self.settings.ai_rate_limit_per_minute:
            return False
        self._request_times.append(now)
        return True

    def _roll_budget_day(self):
        today = self._today()
        if today != self._budget_day:
            self._budget_day = today
            self._spent_usd = 0.0
            self._alerted = False

    def _budget_available(self) -> bool:
        self._roll_budget_day()
        return self._spent_usd < self.settings.ai_daily_budget_usd

    def _track_cost(self, input_tokens: int, output_tokens: int) -> float:
        cost = estimate_cost(input_tokens, output_tokens)
        self._spent_usd += cost
        budget = self.settings.ai_daily_budget_usd
        if not self._alerted and budget > 0 and self._spent_usd > budget * BUDGET_ALERT_RATIO:
            self._alerted = True
            logger.warning(
                f"[EXPLANATION] AI budget alert: ${self._spent_usd:.2f} / ${budget:.2f} spent today"
            )
        return cost

    def get_budget_status(self) -> Dict[str, Any]:
        """Today's AI spend; a zero budget reports 100% used (LLM path disabled)"""
        with self._lock:
            self._roll_budget_day()
            budget = self.settings.ai_daily_budget_usd
            return {
                "date": self._budget_day.isoformat(),
                "daily_budget_usd": budget,
                "spent_usd": round(self._spent_usd, 6),
                "remaining_usd": round(max(0.0, budget - self._spent_usd), 6),
                "percentage": round(self._spent_usd / budget * 100, 2) if budget else 100.0,
                "llm_enabled": self.client is not None,
            }

    # ------------------------------------------------------------------
    # Explanations
    # ------------------------------------------------------------------

    def explain(
        self,
        candidate: MatchCandidate,
        organization: Organization,
        program: FundingProgram,
        today: Optional[date] = None,
    ) -> MatchExplanation:
        """
        Explanation for a scored candidate: cached LLM text, fresh LLM text,
        or the rule-based explanation.
        """
        fallback = generate_explanation(candidate, organization, program, today)
        if self.client is None:
            return fallback

        key = self._cache_key(candidate)
        with self._lock:
            cached = self._get_cached(key)
            if cached:
                self.stats["cache_hits"] += 1
                return cached

            if not self._budget_available():
                self.stats["fallbacks"] += 1
                logger.warning(f"[EXPLANATION] Daily budget exhausted, using rule-based explanation for {candidate.program_id}")
                return fallback

            if not self._acquire_rate_slot():
                self.stats["fallbacks"] += 1
                logger.warning(f"[EXPLANATION] Rate limit reached, using rule-based explanation for {candidate.program_id}")
                return fallback

        explanation = self._explain_with_llm(candidate, organization, program, fallback)
        if explanation.source == "llm":
            with self._lock:
                self._cache[key] = (self._clock(), explanation)
        return explanation

    def _explain_with_llm(
        self,
        candidate: MatchCandidate,
        organization: Organization,
        program: FundingProgram,
        fallback: MatchExplanation,
    ) -> MatchExplanation:
        prompt = self._build_prompt(candidate, organization, program, fallback)

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=1024,
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ],
                system=SYSTEM_PROMPT,
            )

            input_tokens = response.usage.input_tokens
            output_tokens = response.usage.output_tokens
            with self._lock:
                self.stats["llm_requests"] += 1
                self.stats["total_tokens"] += input_tokens + output_tokens
                cost = self._track_cost(input_tokens, output_tokens)

            content = response.content[0].text

            # Extract JSON from response (handle potential markdown wrapping)
            if "```json" in content:
                content = content.split("```json")[1].split("```")[0]
            elif "```" in content:
                content = content.split("```")[1].split("```")[0]

            data = json.loads(content.strip())

            logger.info(
                f"[EXPLANATION] Generated explanation for {candidate.organization_id}/{candidate.program_id} "
                f"({input_tokens + output_tokens} tokens, ${cost:.4f})"
            )
            return MatchExplanation(
                summary=str(data.get("summary") or fallback.summary),
                reasons=[str(r) for r in data.get("reasons", [])][:5] or fallback.reasons,
                warnings=[str(w) for w in data.get("warnings", [])][:5],
                recommendations=[str(r) for r in data.get("recommendations", [])][:3],
                source="llm",
            )

        except json.JSONDecodeError as e:
            logger.error(f"[EXPLANATION] JSON parse error: {e}")
        except Exception as e:
            logger.error(f"[EXPLANATION] LLM error: {e}")

        with self._lock:
            self.stats["fallbacks"] += 1
        return fallback

    def _build_prompt(
        self,
        candidate: MatchCandidate,
        organization: Organization,
        program: FundingProgram,
        fallback: MatchExplanation,
    ) -> str:
        """Build the prompt for the explanation request"""
        components = candidate.component_scores

        org_context = f"""
## Organization
- **Name:** {organization.name or organization.id}
- **Type:** {organization.organization_type.value}
- **Industry:** {organization.industry_sector.value}
- **TRL:** {organization.technology_readiness_level or 'Not specified'}
- **Certifications:** {', '.join(sorted(organization.certifications)) or 'None'}
- **Key Technologies:** {', '.join(organization.key_technologies) or 'Not specified'}
- **R&D Experience:** {organization.rd_experience_level.value}
"""

        program_context = f"""
## Funding Program
- **Title:** {program.title}
- **Agency:** {program.agency or 'Unknown'}
- **Industry:** {program.industry_sector.value if program.industry_sector else 'Unknown'}
- **TRL Range:** {program.trl_min or '-'} - {program.trl_max or '-'}
- **Budget (KRW):** {f'{program.budget:,.0f}' if program.budget else 'Not determined'}
- **Deadline:** {program.deadline.isoformat() if program.deadline else 'To be announced'}
- **Required Certifications:** {', '.join(sorted(program.certification_requirements)) or 'None'}
"""

        match_context = f"""
## Match Analysis
- **Total Score:** {candidate.total_score}/100
- **Industry Relevance:** {candidate.industry_relevance_score:.2f}
- **Components:** industry {components.industry}/30, TRL {components.trl}/20, certifications {components.certifications}/20, budget {components.budget}/15, experience {components.experience}/15
- **Reason Codes:** {', '.join(candidate.reasons)}
- **Warnings:** {'; '.join(fallback.warnings) or 'None'}
"""

        return f"""Explain this funding program match to the organization.

{org_context}

{program_context}

{match_context}

Respond with JSON only."""
