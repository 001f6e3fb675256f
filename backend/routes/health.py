"""Health check routes"""

from fastapi import APIRouter

router = APIRouter(prefix="/api", tags=["health"])

# matching service provider will be injected from main.py
_service_provider = None


def set_service_provider(provider):
    """Allow main.py to inject a callable returning the active matching service"""
    global _service_provider
    _service_provider = provider


@router.get("/health")
async def health_check():
    service = _service_provider() if _service_provider else None
    return {
        "status": "healthy",
        "service": "Connect Matching API",
        "taxonomy_version": service.taxonomy.version if service else None,
    }
