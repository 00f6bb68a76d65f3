from collections.abc import Sequence
from dataclasses import dataclass

from ledgerlens.classifiers.rules import RECURRING_KEYWORDS
from ledgerlens.domain.statistics import percentage, trend_direction
from ledgerlens.models import (
    CategoryRef,
    Insight,
    InsightType,
    InsightWindow,
    RecommendedAction,
    Transaction,
)

from .base import (
    InsightGenerator,
    batch_currency,
    category_name,
    category_of,
    expenses,
    format_minor,
    total,
    trend_series,
)

HIGH_IMPACT_SHARE = 50.0
RECURRING_HIGH_IMPACT_SHARE = 30.0


@dataclass
class _CategorySpend:
    name: str
    category: CategoryRef | None
    amount: int = 0
    count: int = 0


def is_recurring(transaction: Transaction) -> bool:
    lowered = transaction.description.lower()
    return any(keyword in lowered for keyword in RECURRING_KEYWORDS)


class SpendingTrendAnalyzer(InsightGenerator):
    focus_area = "spending_trends"

    def __init__(self, major_category_percent: float = 30.0) -> None:
        self.major_category_percent = major_category_percent

    def analyze(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        previous: Sequence[Transaction] = (),
    ) -> list[Insight]:
        spent = expenses(transactions)
        total_expenses = total(spent)
        if total_expenses == 0:
            return []

        currency = batch_currency(spent)
        insights: list[Insight] = []
        major = self._major_category(spent, total_expenses, window, previous, currency)
        if major is not None:
            insights.append(major)
        recurring = self._recurring(spent, total_expenses, window, currency)
        if recurring is not None:
            insights.append(recurring)
        return insights

    @staticmethod
    def group_by_category(spent: Sequence[Transaction]) -> list[_CategorySpend]:
        """Per-category totals, largest first; ties keep first-seen order."""
        groups: dict[str, _CategorySpend] = {}
        for transaction in spent:
            name = category_name(transaction)
            group = groups.get(name)
            if group is None:
                group = groups[name] = _CategorySpend(name=name, category=category_of(transaction))
            group.amount += transaction.amount
            group.count += 1
        return sorted(groups.values(), key=lambda group: -group.amount)

    def _major_category(
        self,
        spent: Sequence[Transaction],
        total_expenses: int,
        window: InsightWindow,
        previous: Sequence[Transaction],
        currency: str,
    ) -> Insight | None:
        top = self.group_by_category(spent)[0]
        share = percentage(top.amount, total_expenses)
        if share <= self.major_category_percent:
            return None

        metrics: dict[str, float] = {
            "category_spending": top.amount,
            "total_expenses": total_expenses,
            "percentage": share,
            "transaction_count": top.count,
        }
        description = (
            f"{top.name} accounts for {share:.1f}% of your total expenses, totaling "
            f"{format_minor(top.amount, currency)}. Consider reviewing this spending "
            "category for optimization opportunities."
        )

        previous_spent = [t for t in expenses(previous) if category_name(t) == top.name]
        if previous_spent:
            previous_amount = total(previous_spent)
            direction = trend_direction(top.amount, previous_amount)
            metrics["previous_period_spending"] = previous_amount
            metrics["change_percent"] = percentage(top.amount - previous_amount, previous_amount)
            if direction == "stable":
                description += " Spending is stable compared to the previous period."
            else:
                description += (
                    f" Spending is {direction} {abs(metrics['change_percent']):.1f}% "
                    "compared to the previous period."
                )

        return Insight(
            type=InsightType.SPENDING_TREND,
            title=f"{top.name} Represents Major Expense Category",
            description=description,
            confidence=85,
            impact="high" if share > HIGH_IMPACT_SHARE else "medium",
            related_category_id=top.category.id if top.category else None,
            metrics=metrics,
            trend_series=trend_series(
                spent,
                window,
                lambda t: t.amount if category_name(t) == top.name else 0,
            ),
            recommended_actions=[
                RecommendedAction(
                    id="review-category-spending",
                    description=f"Review {top.name} spending for potential cost reductions",
                    action_type="review",
                ),
                RecommendedAction(
                    id="set-category-budget",
                    description=f"Set a budget target for {top.name}",
                    action_type="adjust_budget",
                ),
            ],
        )

    @staticmethod
    def _recurring(
        spent: Sequence[Transaction],
        total_expenses: int,
        window: InsightWindow,
        currency: str,
    ) -> Insight | None:
        recurring = [t for t in spent if is_recurring(t)]
        if not recurring:
            return None

        recurring_total = total(recurring)
        share = percentage(recurring_total, total_expenses)
        return Insight(
            type=InsightType.SPENDING_TREND,
            title="Recurring Expenses Identified",
            description=(
                f"Found {len(recurring)} recurring expenses totaling "
                f"{format_minor(recurring_total, currency)}. These represent {share:.1f}% "
                "of your expenses for this period."
            ),
            confidence=90,
            impact="high" if share > RECURRING_HIGH_IMPACT_SHARE else "medium",
            metrics={
                "recurring_count": len(recurring),
                "recurring_total": recurring_total,
                "percentage_of_total": share,
            },
            trend_series=trend_series(recurring, window, lambda t: t.amount),
            recommended_actions=[
                RecommendedAction(
                    id="review-subscriptions",
                    description="Review recurring subscriptions for unused services",
                    action_type="review",
                ),
                RecommendedAction(
                    id="consider-annual-billing",
                    description="Consider annual billing plans for discounts",
                    action_type="adjust_budget",
                ),
            ],
        )
