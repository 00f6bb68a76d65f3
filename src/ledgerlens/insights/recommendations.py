from collections.abc import Sequence

from ledgerlens.models import Insight, InsightType, InsightWindow, RecommendedAction, Transaction

from .base import InsightGenerator, batch_currency, expenses, format_minor, total, trend_series

DEDUCTIBLE_KEYWORDS = ("office", "software", "equipment", "travel", "supplies", "marketing")

# Flat corporate income tax rate used to estimate savings from deductions.
ESTIMATED_TAX_RATE = 0.21

# Minor units above which the deduction opportunity counts as high impact.
HIGH_IMPACT_TOTAL = 100_000


def is_deductible(transaction: Transaction) -> bool:
    lowered = transaction.description.lower()
    return any(keyword in lowered for keyword in DEDUCTIBLE_KEYWORDS)


class RecommendationAnalyzer(InsightGenerator):
    focus_area = "recommendations"

    def __init__(self, tax_rate: float = ESTIMATED_TAX_RATE) -> None:
        self.tax_rate = tax_rate

    def analyze(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        previous: Sequence[Transaction] = (),
    ) -> list[Insight]:
        deductible = [t for t in expenses(transactions) if is_deductible(t)]
        if not deductible:
            return []

        deductible_total = total(deductible)
        currency = batch_currency(deductible)
        return [
            Insight(
                type=InsightType.TAX_OPPORTUNITY,
                title="Potential Tax Deductions Identified",
                description=(
                    f"Found {len(deductible)} business-related expenses totaling "
                    f"{format_minor(deductible_total, currency)} that may be tax-deductible."
                ),
                confidence=75,
                impact="high" if deductible_total > HIGH_IMPACT_TOTAL else "medium",
                metrics={
                    "deductible_expense_count": len(deductible),
                    "deductible_expense_total": deductible_total,
                    "tax_rate": self.tax_rate,
                    "potential_savings": deductible_total * self.tax_rate,
                },
                trend_series=trend_series(deductible, window, lambda t: t.amount),
                recommended_actions=[
                    RecommendedAction(
                        id="consult-tax-professional",
                        description="Consult with tax professional about these deductions",
                        action_type="review",
                    ),
                    RecommendedAction(
                        id="document-expenses",
                        description="Ensure proper documentation for all business expenses",
                        action_type="export_report",
                    ),
                    RecommendedAction(
                        id="refine-categories",
                        description="Consider categorizing expenses more precisely for tax purposes",
                        action_type="categorize",
                    ),
                ],
            )
        ]
