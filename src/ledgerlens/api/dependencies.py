from fastapi import HTTPException, Request

from ledgerlens.core.rate_limit import RateLimiter
from ledgerlens.services.categorization import CategorizationOrchestrator
from ledgerlens.services.insights import InsightOrchestrator


def get_categorizer(request: Request) -> CategorizationOrchestrator:
    categorizer = getattr(request.app.state, "categorizer", None)
    if not categorizer:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return categorizer


def get_insights(request: Request) -> InsightOrchestrator:
    insights = getattr(request.app.state, "insights", None)
    if not insights:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return insights


def get_insights_limiter(request: Request) -> RateLimiter | None:
    return getattr(request.app.state, "insights_limiter", None)
