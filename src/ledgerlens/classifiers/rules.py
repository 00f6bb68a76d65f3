import re
from dataclasses import dataclass, field

from ledgerlens.domain.categories import find_category
from ledgerlens.domain.tags import normalize_tags
from ledgerlens.domain.text import clean_description, extract_location, extract_vendor
from ledgerlens.logger import get_logger
from ledgerlens.models import (
    CategorizationContext,
    CategorizationResult,
    CategoryRef,
    ExtractedMetadata,
    Suggestion,
    Transaction,
    TransactionType,
)

from .base import Categorizer

logger = get_logger(__name__)

MATCHED_CONFIDENCE = 60
UNRESOLVED_MATCH_CONFIDENCE = 55
DEFAULT_CONFIDENCE = 50

# Expenses above this many minor units get a budgeting suggestion.
BUDGET_SUGGESTION_AMOUNT = 50_000

RECURRING_KEYWORDS = ("subscription", "monthly", "annual", "recurring")


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"\b(?:{alternatives})s?\b")


@dataclass(frozen=True)
class KeywordRule:
    category: str
    keywords: tuple[str, ...]
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pattern", _keyword_pattern(self.keywords))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


# First matching rule wins, so order matters.
EXPENSE_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("Office Supplies", ("office", "supply", "supplies", "pen", "paper", "staples", "printer")),
    KeywordRule("Software & Subscriptions", ("software", "subscription", "saas", "adobe", "creative cloud", "github")),
    KeywordRule("Marketing & Advertising", ("marketing", "advertising", "ads", "campaign", "promotion")),
    KeywordRule("Travel & Meals", (
        "travel", "flight", "hotel", "meal", "restaurant", "lunch", "dinner",
        "uber", "lyft", "taxi", "fuel", "gas",
    )),
    KeywordRule("Insurance", ("insurance", "premium")),
    KeywordRule("Rent & Utilities", ("rent", "lease", "utility", "utilities", "electricity", "internet")),
    KeywordRule("Taxes & Licenses", ("tax", "taxes", "license", "permit")),
    KeywordRule("Bank Fees", ("bank", "fee", "overdraft")),
)

INCOME_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("Sales Revenue", ("sales", "sale", "revenue")),
    KeywordRule("Consulting Fees", ("consulting", "advisory")),
    KeywordRule("Service Revenue", ("service", "client", "invoice", "payment")),
    KeywordRule("Interest Income", ("interest", "dividend")),
    KeywordRule("Salary", ("salary", "paycheck", "payroll")),
)

INCOME_INDICATORS = _keyword_pattern(("income", "revenue", "payment from", "client", "invoice paid", "refund"))
EXPENSE_INDICATORS = _keyword_pattern((
    "asset", "equipment", "purchase", "bill", "subscription", "paid to", "expense",
))

EXPENSE_TAGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("urgent", ("urgent", "emergency")),
    ("recurring", RECURRING_KEYWORDS),
    ("business", ("business", "company")),
)
INCOME_TAGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("client", ("client", "customer")),
    ("project", ("project", "contract")),
)

OTHER_CATEGORY_NAMES: dict[str, str] = {"expense": "Other Expenses", "income": "Other Income"}


def infer_transaction_type(lowered: str) -> TransactionType:
    income_hits = len(INCOME_INDICATORS.findall(lowered))
    expense_hits = len(EXPENSE_INDICATORS.findall(lowered))
    return "income" if income_hits > expense_hits else "expense"


def extract_tags(lowered: str, transaction_type: TransactionType) -> list[str]:
    table = INCOME_TAGS if transaction_type == "income" else EXPENSE_TAGS
    return normalize_tags(
        tag for tag, keywords in table if _keyword_pattern(keywords).search(lowered)
    )


def build_suggestions(lowered: str, amount: int, transaction_type: TransactionType) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    if transaction_type == "expense" and amount > BUDGET_SUGGESTION_AMOUNT:
        suggestions.append(
            Suggestion(type="budget", value="Consider adding to monthly budget", confidence=75)
        )
    if any(keyword in lowered for keyword in RECURRING_KEYWORDS):
        suggestions.append(
            Suggestion(type="recurring", value="This appears to be a recurring expense", confidence=90)
        )
    return suggestions


class RuleBasedCategorizer(Categorizer):
    """Deterministic keyword categorizer used when the AI path is unavailable."""

    def __init__(
        self,
        expense_rules: tuple[KeywordRule, ...] = EXPENSE_RULES,
        income_rules: tuple[KeywordRule, ...] = INCOME_RULES,
    ) -> None:
        self.rules: dict[str, tuple[KeywordRule, ...]] = {
            "expense": expense_rules,
            "income": income_rules,
        }

    def categorize(
        self, transaction: Transaction, context: CategorizationContext
    ) -> CategorizationResult:
        return self.categorize_description(
            transaction.description,
            transaction.amount,
            context.available_categories,
            transaction_type=transaction.type,
        )

    def categorize_description(
        self,
        description: str,
        amount: int,
        categories: list[CategoryRef],
        transaction_type: TransactionType | None = None,
    ) -> CategorizationResult:
        lowered = description.lower()
        if transaction_type is None:
            transaction_type = infer_transaction_type(lowered)

        category, confidence = self._match(lowered, categories, transaction_type)
        logger.debug(
            "[RULES] '%s' -> '%s' (%s, confidence %s)",
            description[:50],
            category.name if category else None,
            transaction_type,
            confidence,
        )

        return CategorizationResult(
            category=category,
            confidence=confidence,
            processed_description=clean_description(description),
            extracted_metadata=ExtractedMetadata(
                vendor=extract_vendor(description),
                location=extract_location(description),
                tags=extract_tags(lowered, transaction_type),
            ),
            suggestions=build_suggestions(lowered, amount, transaction_type),
            source_model="fallback",
            transaction_type=transaction_type,
        )

    def _match(
        self,
        lowered: str,
        categories: list[CategoryRef],
        transaction_type: TransactionType,
    ) -> tuple[CategoryRef, int]:
        unresolved: KeywordRule | None = None
        for rule in self.rules[transaction_type]:
            if not rule.matches(lowered):
                continue
            resolved = find_category(categories, rule.category, transaction_type)
            if resolved is not None:
                return resolved, MATCHED_CONFIDENCE
            if unresolved is None:
                unresolved = rule

        if unresolved is not None:
            return CategoryRef(name=unresolved.category, type=transaction_type), UNRESOLVED_MATCH_CONFIDENCE

        return self._default_category(categories, transaction_type), DEFAULT_CONFIDENCE

    @staticmethod
    def _default_category(categories: list[CategoryRef], transaction_type: TransactionType) -> CategoryRef:
        other = find_category(categories, OTHER_CATEGORY_NAMES[transaction_type], transaction_type, threshold=100)
        if other is not None:
            return other
        uncategorized = find_category(categories, "Uncategorized", threshold=100)
        if uncategorized is not None:
            return uncategorized
        return CategoryRef.uncategorized(transaction_type)
