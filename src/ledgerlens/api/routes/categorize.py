from typing import Annotated

from fastapi import APIRouter, Depends, Header

from ledgerlens.api.dependencies import get_categorizer
from ledgerlens.api.schemas import ProcessTransactionRequest
from ledgerlens.domain.categories import build_category_signal
from ledgerlens.logger import get_logger
from ledgerlens.models import CategorizationContext, CategorizationResult
from ledgerlens.services.categorization import CategorizationOrchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/api/ai")


@router.post("/process-transaction", response_model=CategorizationResult)
async def process_transaction(
    req: ProcessTransactionRequest,
    categorizer: Annotated[CategorizationOrchestrator, Depends(get_categorizer)],
    user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> CategorizationResult:
    context = CategorizationContext(
        available_categories=build_category_signal(req.user_categories, req.system_categories),
        recent_transactions=req.recent_transactions,
    )
    result = await categorizer.acategorize_transaction(req.transaction, context, namespace=user_id)
    logger.info(
        "[API] Categorized '%s...' as '%s' (%s, confidence %d)",
        req.transaction.description[:50],
        result.category.name if result.category else None,
        result.source_model,
        result.confidence,
    )
    return result
