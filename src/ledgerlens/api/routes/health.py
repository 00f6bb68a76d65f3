import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from ledgerlens.api.dependencies import get_categorizer
from ledgerlens.services.categorization import CategorizationOrchestrator

router = APIRouter(prefix="/api")


@router.get("/health")
async def health(
    categorizer: Annotated[CategorizationOrchestrator, Depends(get_categorizer)],
    deep: bool = False,
) -> dict[str, Any]:
    ai_client = categorizer.ai_client
    payload: dict[str, Any] = {
        "status": "ok",
        "ai_configured": ai_client is not None,
        "cached_results": len(categorizer.cache),
    }
    if deep and ai_client is not None:
        payload["ai_reachable"] = await asyncio.to_thread(ai_client.check_health)
    return payload
