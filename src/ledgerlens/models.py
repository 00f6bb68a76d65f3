from datetime import date, timedelta
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

TransactionType = Literal["income", "expense"]
SourceModel = Literal["ai", "fallback"]
Impact = Literal["low", "medium", "high"]

UNCATEGORIZED_ID = "uncategorized"
FALLBACK_CONFIDENCE_CEILING = 60
MAX_WINDOW_DAYS = 365


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    amount: int  # minor currency units
    currency_code: str = "USD"
    type: TransactionType
    occurred_at: date


class CategoryRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str
    type: TransactionType

    @classmethod
    def uncategorized(cls, type_: TransactionType) -> "CategoryRef":
        return cls(id=UNCATEGORIZED_ID, name="Uncategorized", type=type_)

    @property
    def is_uncategorized(self) -> bool:
        return self.id == UNCATEGORIZED_ID


class CategorizedTransaction(Transaction):
    id: str | None = None
    category: CategoryRef | None = None


class RecentTransaction(BaseModel):
    description: str
    category: str
    amount: int


class CategorizationContext(BaseModel):
    available_categories: list[CategoryRef] = Field(default_factory=list)
    recent_transactions: list[RecentTransaction] = Field(default_factory=list)


class ExtractedMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor: str | None = None
    location: str | None = None
    tags: list[str] = Field(default_factory=list)


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    value: str
    confidence: int = Field(ge=0, le=100)


class ProviderExtras(BaseModel):
    """Bounded side-map for provider details that are not part of the result contract."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    model: str | None = None
    processing_time_ms: float | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class CategorizationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: CategoryRef | None
    confidence: int = Field(ge=0, le=100)
    processed_description: str
    extracted_metadata: ExtractedMetadata = Field(default_factory=ExtractedMetadata)
    suggestions: list[Suggestion] = Field(default_factory=list)
    source_model: SourceModel
    transaction_type: TransactionType = "expense"
    warnings: list[str] = Field(default_factory=list)
    provider_extras: ProviderExtras | None = None

    @model_validator(mode="after")
    def _fallback_is_never_confident(self) -> "CategorizationResult":
        if self.source_model == "fallback" and self.confidence > FALLBACK_CONFIDENCE_CEILING:
            raise ValueError(
                f"fallback confidence {self.confidence} exceeds {FALLBACK_CONFIDENCE_CEILING}"
            )
        return self

    @property
    def is_fallback(self) -> bool:
        return self.source_model == "fallback"


class InsightWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date

    @property
    def span_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def day_count(self) -> int:
        """Calendar days covered, both ends included."""
        return self.span_days + 1

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def previous(self) -> "InsightWindow":
        """The window of equal length that ends the day before this one starts."""
        end = self.start_date - timedelta(days=1)
        return InsightWindow(start_date=end - timedelta(days=self.span_days), end_date=end)


class InsightType(str, Enum):
    SPENDING_TREND = "spending_trend"
    ANOMALY = "anomaly"
    CASH_FLOW = "cash_flow"
    TAX_OPPORTUNITY = "tax_opportunity"


class TrendPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    value: int


class RecommendedAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    action_type: Literal["categorize", "review", "investigate", "adjust_budget", "export_report"]


class Insight(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: InsightType
    title: str
    description: str
    confidence: int = Field(ge=0, le=100)
    impact: Impact
    related_category_id: str | None = None
    metrics: dict[str, float] = Field(default_factory=dict)
    trend_series: list[TrendPoint] = Field(default_factory=list)
    recommended_actions: list[RecommendedAction] = Field(default_factory=list)
    processing_time_ms: float | None = None


class InsightSummary(BaseModel):
    total_transactions: int
    total_income: int
    total_expenses: int
    net_income: int
