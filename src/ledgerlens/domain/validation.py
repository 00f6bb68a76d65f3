from collections.abc import Iterable

from ledgerlens.errors import ValidationError
from ledgerlens.models import MAX_WINDOW_DAYS, InsightWindow, Transaction

MAX_DESCRIPTION_LENGTH = 500
MAX_AMOUNT = 99_999_999_999

SUPPORTED_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "CNY", "INR", "CAD", "AUD", "CHF", "SEK",
    "NOK", "NZD", "MXN", "SGD", "HKD", "KRW", "TRY", "RUB", "ZAR",
})

FOCUS_AREAS = ("spending_trends", "anomalies", "cash_flow", "recommendations")


def validate_transaction(transaction: Transaction) -> Transaction:
    """Check business constraints and return the transaction with a normalized currency."""
    description = transaction.description
    if not isinstance(description, str) or not description.strip():
        raise ValidationError("description", "Transaction description is required")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            "description",
            f"Description must be less than {MAX_DESCRIPTION_LENGTH} characters",
        )

    amount = transaction.amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount", "Valid transaction amount is required")
    if amount > MAX_AMOUNT:
        raise ValidationError("amount", "Amount is too large")

    currency = (transaction.currency_code or "").strip().upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError("currency_code", f"Unsupported currency: {transaction.currency_code}")

    if transaction.type not in ("income", "expense"):
        raise ValidationError("type", 'Transaction type must be either "income" or "expense"')

    if currency != transaction.currency_code:
        return transaction.model_copy(update={"currency_code": currency})
    return transaction


def validate_window(window: InsightWindow) -> InsightWindow:
    if window.end_date <= window.start_date:
        raise ValidationError("window", "Start date must be before end date")
    if window.span_days > MAX_WINDOW_DAYS:
        raise ValidationError("window", f"Time period cannot exceed {MAX_WINDOW_DAYS} days")
    return window


def validate_focus_areas(focus_areas: Iterable[str]) -> list[str]:
    areas = list(focus_areas)
    unknown = [area for area in areas if area not in FOCUS_AREAS]
    if unknown:
        raise ValidationError("focus_areas", f"Unknown focus areas: {', '.join(unknown)}")
    return areas
