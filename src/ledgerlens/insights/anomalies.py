from collections.abc import Sequence

from ledgerlens.domain.statistics import mean, outlier_score, standard_deviation, z_score_outliers
from ledgerlens.domain.text import collapse_whitespace, sanitize
from ledgerlens.models import Insight, InsightType, InsightWindow, RecommendedAction, Transaction

from .base import InsightGenerator, batch_currency, category_of, format_minor, trend_series

HIGH_IMPACT_MULTIPLE = 3


class AnomalyDetector(InsightGenerator):
    """Flags the largest z-score outlier among all transaction amounts."""

    focus_area = "anomalies"

    def __init__(self, sigma_threshold: float = 2.0) -> None:
        self.sigma_threshold = sigma_threshold

    def analyze(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        previous: Sequence[Transaction] = (),
    ) -> list[Insight]:
        # Population deviation is meaningless below two samples.
        if len(transactions) < 2:
            return []

        amounts = [t.amount for t in transactions]
        indices = z_score_outliers(amounts, self.sigma_threshold)
        if not indices:
            return []

        largest = transactions[max(indices, key=lambda index: amounts[index])]
        average = mean(amounts)
        spread = standard_deviation(amounts)
        score = outlier_score(largest.amount, average, spread)
        currency = batch_currency(transactions)
        category = category_of(largest)

        return [
            Insight(
                type=InsightType.ANOMALY,
                title="Unusually Large Transaction Detected",
                description=(
                    f'Transaction "{collapse_whitespace(sanitize(largest.description))}" for '
                    f"{format_minor(largest.amount, currency)} on {largest.occurred_at.isoformat()} "
                    f"is significantly larger than your average transaction of "
                    f"{format_minor(average, currency)}."
                ),
                confidence=95,
                impact="high" if largest.amount > HIGH_IMPACT_MULTIPLE * average else "medium",
                related_category_id=category.id if category else None,
                metrics={
                    "transaction_amount": largest.amount,
                    "average_amount": average,
                    "standard_deviation": spread,
                    "outlier_score": score,
                    "outlier_count": len(indices),
                },
                trend_series=trend_series(transactions, window, lambda t: t.amount),
                recommended_actions=[
                    RecommendedAction(
                        id="verify-transaction",
                        description="Verify this transaction is correct",
                        action_type="investigate",
                    ),
                    RecommendedAction(
                        id="confirm-planned-expense",
                        description="Consider if this expense was planned",
                        action_type="review",
                    ),
                ],
            )
        ]
