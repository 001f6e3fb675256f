"""
Matching routes

Routes:
- POST /api/matches/generate - Rank programs for one organization
- POST /api/matches/explain - Explain a single organization/program match
- GET /api/taxonomy - Active taxonomy version and sector labels
- POST /api/taxonomy/reload - Reload the taxonomy file without a restart
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from match_explainer import generate_explanation
from matching_errors import ConfigurationError, InvalidInputError
from organization_matching_service import OrganizationMatchingService
from taxonomy_service import load_taxonomy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["matches"])

# Dependencies injected from main.py
_matching_service: Optional[OrganizationMatchingService] = None
_explanation_service = None
_settings = None


def set_dependencies(matching_service, explanation_service, settings):
    """Inject dependencies from main.py"""
    global _matching_service, _explanation_service, _settings
    _matching_service = matching_service
    _explanation_service = explanation_service
    _settings = settings


def get_matching_service() -> Optional[OrganizationMatchingService]:
    return _matching_service


def _require_service() -> OrganizationMatchingService:
    if _matching_service is None:
        raise HTTPException(status_code=503, detail="Matching service not initialized")
    return _matching_service


# ============================================
# Request models
# ============================================

class GenerateMatchesRequest(BaseModel):
    organization: Dict[str, Any]
    programs: List[Dict[str, Any]]
    limit: Optional[int] = Field(default=None, ge=0)
    include_expired: bool = False
    minimum_score: Optional[int] = Field(default=None, ge=0, le=100)


class ExplainMatchRequest(BaseModel):
    organization: Dict[str, Any]
    program: Dict[str, Any]
    include_expired: bool = False


# ============================================
# Routes
# ============================================

@router.post("/matches/generate")
async def generate_matches(request: GenerateMatchesRequest):
    service = _require_service()
    try:
        results = service.generate_matches(
            request.organization,
            request.programs,
            limit=request.limit,
            include_expired=request.include_expired,
            minimum_score=request.minimum_score,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return results.to_dict()


@router.post("/matches/explain")
async def explain_match(request: ExplainMatchRequest):
    service = _require_service()
    try:
        organization = service.parse_organization(request.organization)
        program = service.resolve_sector(service.parse_program(request.program))
        candidate = service.score_pair(organization, program, include_expired=request.include_expired)
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if candidate is None:
        raise HTTPException(status_code=404, detail="Program is not a match for this organization")

    if _explanation_service is not None:
        explanation = _explanation_service.explain(candidate, organization, program)
    else:
        explanation = generate_explanation(candidate, organization, program)

    return {
        "match": candidate.to_dict(),
        "explanation": explanation.to_dict(),
    }


@router.get("/taxonomy")
async def get_taxonomy():
    service = _require_service()
    return service.taxonomy.to_summary()


@router.post("/taxonomy/reload")
async def reload_taxonomy():
    """Reload the taxonomy file; on failure the current taxonomy stays active"""
    global _matching_service
    service = _require_service()
    try:
        taxonomy = load_taxonomy(_settings.taxonomy_path)
    except ConfigurationError as e:
        logger.error(f"[TAXONOMY] Reload failed, keeping {service.taxonomy.version}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    previous_version = service.taxonomy.version
    _matching_service = OrganizationMatchingService(taxonomy, _settings)
    logger.info(f"[TAXONOMY] Reloaded taxonomy {previous_version} -> {taxonomy.version}")
    return {
        "previous_version": previous_version,
        "version": taxonomy.version,
    }
