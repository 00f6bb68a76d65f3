from datetime import date

from pydantic import BaseModel, Field

from ledgerlens.domain.validation import FOCUS_AREAS
from ledgerlens.models import (
    CategorizedTransaction,
    CategoryRef,
    Insight,
    InsightSummary,
    RecentTransaction,
    Transaction,
)


class ProcessTransactionRequest(BaseModel):
    transaction: Transaction
    user_categories: list[CategoryRef] = Field(default_factory=list)
    system_categories: list[CategoryRef] = Field(default_factory=list)
    recent_transactions: list[RecentTransaction] = Field(default_factory=list)


class GenerateInsightsRequest(BaseModel):
    start_date: date
    end_date: date
    transactions: list[CategorizedTransaction] = Field(default_factory=list)
    previous_transactions: list[CategorizedTransaction] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=lambda: list(FOCUS_AREAS))


class GenerateInsightsResponse(BaseModel):
    insights: list[Insight]
    summary: InsightSummary
    message: str
