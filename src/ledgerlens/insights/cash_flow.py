from collections.abc import Sequence

from ledgerlens.domain.statistics import percentage
from ledgerlens.models import Insight, InsightType, InsightWindow, RecommendedAction, Transaction

from .base import InsightGenerator, batch_currency, format_minor, total, trend_series

HEALTHY_MARGIN = 0.3


def _signed(transaction: Transaction) -> int:
    return transaction.amount if transaction.type == "income" else -transaction.amount


class CashFlowAnalyzer(InsightGenerator):
    focus_area = "cash_flow"

    def analyze(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        previous: Sequence[Transaction] = (),
    ) -> list[Insight]:
        if not transactions:
            return []

        total_income = total(transactions, "income")
        total_expenses = total(transactions, "expense")
        net_income = total_income - total_expenses
        currency = batch_currency(transactions)
        series = trend_series(transactions, window, _signed)

        metrics: dict[str, float] = {
            "total_income": total_income,
            "total_expenses": total_expenses,
            "net_income": net_income,
        }
        # The ratio is undefined when either side is zero.
        if total_income > 0 and total_expenses > 0:
            metrics["cash_flow_ratio"] = total_income / total_expenses

        if net_income > 0:
            metrics["savings_rate"] = percentage(net_income, total_income)
            return [
                Insight(
                    type=InsightType.CASH_FLOW,
                    title="Positive Cash Flow This Period",
                    description=(
                        f"Your income exceeds expenses by {format_minor(net_income, currency)}, "
                        "providing healthy working capital for business operations."
                    ),
                    confidence=98,
                    impact="high" if net_income > HEALTHY_MARGIN * total_income else "medium",
                    metrics=metrics,
                    trend_series=series,
                    recommended_actions=[
                        RecommendedAction(
                            id="invest-surplus",
                            description="Consider investing surplus in business growth",
                            action_type="review",
                        ),
                        RecommendedAction(
                            id="build-reserve",
                            description="Build emergency reserve fund",
                            action_type="adjust_budget",
                        ),
                    ],
                )
            ]

        deficit = abs(net_income)
        metrics["deficit"] = deficit
        metrics["burn_rate"] = deficit / window.day_count
        return [
            Insight(
                type=InsightType.CASH_FLOW,
                title="Negative Cash Flow Detected",
                description=(
                    f"Your expenses exceed income by {format_minor(deficit, currency)}. "
                    "Review expenses and consider cost-cutting measures or revenue "
                    "enhancement strategies."
                ),
                confidence=95,
                impact="high",
                metrics=metrics,
                trend_series=series,
                recommended_actions=[
                    RecommendedAction(
                        id="reduce-expenses",
                        description="Review and reduce non-essential expenses",
                        action_type="review",
                    ),
                    RecommendedAction(
                        id="explore-revenue",
                        description="Explore additional revenue streams",
                        action_type="investigate",
                    ),
                    RecommendedAction(
                        id="short-term-financing",
                        description="Consider short-term financing options",
                        action_type="adjust_budget",
                    ),
                ],
            )
        ]
