from __future__ import annotations

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import MatchValidationError, StorageUnavailableError
from .llm.config import DEFAULT_LLM_CONFIG
from .llm.groq_client import RelevanceOracleClient
from .recommendations.config import DEFAULT_MATCH_SETTINGS
from .recommendations.data_store import get_store
from .recommendations.models import (
    AreaInsightsResponse,
    Category,
    MatchRequest,
    MatchResponse,
    OpportunityRequest,
    PriceTier,
    UserContext,
)
from .recommendations.retrieval import Recommender

app = FastAPI(title="Rural Business Matching API", version="1.0.0")

_oracle = RelevanceOracleClient(DEFAULT_LLM_CONFIG)


def get_recommender() -> Recommender:
    """Build the recommender over the shared store and oracle client."""
    store = get_store(DEFAULT_MATCH_SETTINGS.data_path)
    return Recommender(store, _oracle, DEFAULT_MATCH_SETTINGS)


@app.exception_handler(MatchValidationError)
async def _validation_error(request: Request, exc: MatchValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc), "kind": exc.kind.value})


@app.exception_handler(StorageUnavailableError)
async def _storage_error(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc), "kind": exc.kind.value})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata() -> dict:
    return {
        "categories": [c.value for c in Category],
        "price_tiers": [t.value for t in PriceTier],
    }


# ── Matching endpoints ───────────────────────────────────────────────────


@app.post("/recommendations", response_model=MatchResponse)
async def recommendations(
    body: MatchRequest,
    recommender: Recommender = Depends(get_recommender),
) -> MatchResponse:
    return await recommender.recommend(body)


@app.post("/ai-matches", response_model=MatchResponse)
async def ai_matches(
    body: MatchRequest,
    recommender: Recommender = Depends(get_recommender),
) -> MatchResponse:
    return await recommender.ai_matches(body)


@app.post("/economic-opportunities", response_model=MatchResponse)
async def economic_opportunities(
    body: OpportunityRequest,
    recommender: Recommender = Depends(get_recommender),
) -> MatchResponse:
    return await recommender.economic_opportunities(body.context, body.limit, body.weights)


@app.post("/opportunities/area", response_model=AreaInsightsResponse)
async def area_opportunities(
    body: UserContext,
    recommender: Recommender = Depends(get_recommender),
) -> AreaInsightsResponse:
    return await recommender.area_insights(body)
