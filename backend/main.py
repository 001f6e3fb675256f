from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
from dotenv import load_dotenv

from explanation_service import ExplanationService
from match_settings import load_settings
from organization_matching_service import OrganizationMatchingService
from taxonomy_service import load_taxonomy
from routes import health, matches

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Configuration and taxonomy errors are fatal: let ConfigurationError propagate
settings = load_settings()
taxonomy = load_taxonomy(settings.taxonomy_path)

matching_service = OrganizationMatchingService(taxonomy, settings)
explanation_service = ExplanationService(settings)

if explanation_service.client is None:
    logger.info("[EXPLANATION] ANTHROPIC_API_KEY not set - using rule-based explanations only")

app = FastAPI(title="Connect Matching API")

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "https://*.vercel.app", "https://*.netlify.app"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

matches.set_dependencies(matching_service, explanation_service, settings)
health.set_service_provider(matches.get_matching_service)

app.include_router(health.router)
app.include_router(matches.router)


@app.get("/api/explanations/budget")
async def explanation_budget():
    return explanation_service.get_budget_status()


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8001))
    uvicorn.run(app, host="0.0.0.0", port=port)
