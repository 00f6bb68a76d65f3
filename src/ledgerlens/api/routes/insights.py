import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Header

from ledgerlens.api.dependencies import get_insights, get_insights_limiter
from ledgerlens.api.schemas import GenerateInsightsRequest, GenerateInsightsResponse
from ledgerlens.core.rate_limit import RateLimiter
from ledgerlens.errors import RateLimitExceededError
from ledgerlens.models import InsightWindow
from ledgerlens.services.insights import InsightOrchestrator

router = APIRouter(prefix="/api/ai")

NO_TRANSACTIONS_MESSAGE = "No transactions found in the specified time period"
RATE_LIMITED_MESSAGE = "Too many insight generation requests. Please try again later."


@router.post("/generate-insights", response_model=GenerateInsightsResponse)
async def generate_insights(
    req: GenerateInsightsRequest,
    orchestrator: Annotated[InsightOrchestrator, Depends(get_insights)],
    limiter: Annotated[RateLimiter | None, Depends(get_insights_limiter)],
    user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> GenerateInsightsResponse:
    if limiter is not None:
        verdict = limiter.check(f"ai-insights:{user_id or 'anonymous'}")
        if not verdict.allowed:
            raise RateLimitExceededError(RATE_LIMITED_MESSAGE, verdict.reset_after_s)

    window = InsightWindow(start_date=req.start_date, end_date=req.end_date)
    report = await asyncio.to_thread(
        orchestrator.build_report,
        req.transactions,
        window,
        req.focus_areas,
        req.previous_transactions,
    )
    if not report.batch:
        message = NO_TRANSACTIONS_MESSAGE
    else:
        message = f"Generated {len(report.insights)} insights successfully"
    return GenerateInsightsResponse(insights=report.insights, summary=report.summary, message=message)
