from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import timedelta

from ledgerlens.models import CategoryRef, Insight, InsightWindow, Transaction, TrendPoint

TREND_BUCKETS = 7


class InsightGenerator(ABC):
    """Pure analyzer over one window of categorized transactions."""

    focus_area: str

    @abstractmethod
    def analyze(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        previous: Sequence[Transaction] = (),
    ) -> list[Insight]:
        pass


def category_of(transaction: Transaction) -> CategoryRef | None:
    return getattr(transaction, "category", None)


def category_name(transaction: Transaction) -> str:
    category = category_of(transaction)
    return category.name if category is not None else "Uncategorized"


def expenses(transactions: Sequence[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.type == "expense"]


def total(transactions: Sequence[Transaction], type_: str | None = None) -> int:
    return sum(t.amount for t in transactions if type_ is None or t.type == type_)


def batch_currency(transactions: Sequence[Transaction]) -> str:
    return transactions[0].currency_code if transactions else "USD"


def format_minor(amount: float, currency: str) -> str:
    return f"{amount / 100:,.2f} {currency}"


def trend_series(
    transactions: Sequence[Transaction],
    window: InsightWindow,
    value: Callable[[Transaction], int],
    buckets: int = TREND_BUCKETS,
) -> list[TrendPoint]:
    """Aggregate ``value`` over equal sub-periods of the window.

    Each point is dated at the first day of its sub-period. Windows shorter
    than ``buckets`` days get one point per day.
    """
    days = window.day_count
    count = max(1, min(buckets, days))
    width = days / count
    sums = [0] * count
    for transaction in transactions:
        if not window.contains(transaction.occurred_at):
            continue
        offset = (transaction.occurred_at - window.start_date).days
        sums[min(int(offset / width), count - 1)] += value(transaction)
    return [
        TrendPoint(date=window.start_date + timedelta(days=int(index * width)), value=amount)
        for index, amount in enumerate(sums)
    ]
