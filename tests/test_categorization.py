import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from unittest.mock import MagicMock

import pytest

from ledgerlens.classifiers.llm import AICategorizationClient
from ledgerlens.core.settings import EngineConfig
from ledgerlens.errors import MalformedResponseError, ServiceUnavailableError, ValidationError
from ledgerlens.models import CategorizationContext, CategorizationResult, CategoryRef, Transaction
from ledgerlens.services.categorization import FALLBACK_WARNING, CategorizationOrchestrator

SOFTWARE = CategoryRef(id="cat-software", name="Software & Subscriptions", type="expense")
OFFICE = CategoryRef(id="cat-office", name="Office Supplies", type="expense")


def make_tx(description: str = "Adobe Creative Cloud monthly subscription", amount: int = 5499, **kwargs) -> Transaction:
    values = {"currency_code": "USD", "type": "expense", "occurred_at": date(2025, 1, 15)}
    values.update(kwargs)
    return Transaction(description=description, amount=amount, **values)


def ai_result(category: CategoryRef | None = SOFTWARE, confidence: int = 95) -> CategorizationResult:
    return CategorizationResult(
        category=category,
        confidence=confidence,
        processed_description="Adobe Creative Cloud Subscription",
        source_model="ai",
    )


@pytest.fixture
def context() -> CategorizationContext:
    return CategorizationContext(available_categories=[OFFICE, SOFTWARE])


@pytest.fixture
def ai_client() -> MagicMock:
    client = MagicMock(spec=AICategorizationClient)
    client.categorize.return_value = ai_result()
    return client


def test_ai_result_is_returned(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    res = orchestrator.categorize_transaction(make_tx(), context)

    assert res.source_model == "ai"
    assert res.confidence == 95
    assert res.warnings == []
    assert orchestrator.stats["ai"] == 1


def test_fallback_when_service_unavailable(ai_client: MagicMock, context: CategorizationContext) -> None:
    ai_client.categorize.side_effect = ServiceUnavailableError("down")
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    res = orchestrator.categorize_transaction(make_tx(), context)

    assert res.source_model == "fallback"
    assert res.category is not None
    assert res.category.name == "Software & Subscriptions"
    assert FALLBACK_WARNING in res.warnings
    assert res.confidence <= 60


@pytest.mark.parametrize(
    "error",
    [
        ServiceUnavailableError("timeout"),
        MalformedResponseError("bad json"),
        TimeoutError("deadline"),
        RuntimeError("unexpected"),
    ],
)
def test_always_returns_a_result(ai_client: MagicMock, context: CategorizationContext, error: Exception) -> None:
    ai_client.categorize.side_effect = error
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    res = orchestrator.categorize_transaction(make_tx("Something odd"), context)

    assert isinstance(res, CategorizationResult)
    assert res.source_model == "fallback"
    assert res.confidence <= 60


def test_malformed_is_counted_separately(ai_client: MagicMock, context: CategorizationContext) -> None:
    ai_client.categorize.side_effect = MalformedResponseError("bad json")
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    orchestrator.categorize_transaction(make_tx(), context)

    assert orchestrator.stats["malformed"] == 1
    assert orchestrator.stats["unavailable"] == 0


def test_missing_category_falls_back(ai_client: MagicMock, context: CategorizationContext) -> None:
    ai_client.categorize.return_value = ai_result(category=None)
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    res = orchestrator.categorize_transaction(make_tx(), context)

    assert res.source_model == "fallback"
    assert orchestrator.stats["malformed"] == 1


def test_no_ai_client_uses_fallback(context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=None)

    res = orchestrator.categorize_transaction(make_tx(), context)

    assert res.source_model == "fallback"
    assert FALLBACK_WARNING in res.warnings


def test_cache_prevents_second_call(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    first = orchestrator.categorize_transaction(make_tx(), context)
    second = orchestrator.categorize_transaction(make_tx(), context)

    assert first == second
    ai_client.categorize.assert_called_once()
    assert orchestrator.stats["cache_hit"] == 1


def test_cache_key_normalizes_description(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    orchestrator.categorize_transaction(make_tx("Adobe  Creative Cloud monthly subscription "), context)
    orchestrator.categorize_transaction(make_tx("adobe creative cloud MONTHLY subscription"), context)

    ai_client.categorize.assert_called_once()


def test_cache_distinguishes_amount_currency_and_namespace(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    orchestrator.categorize_transaction(make_tx(amount=5499), context)
    orchestrator.categorize_transaction(make_tx(amount=5500), context)
    orchestrator.categorize_transaction(make_tx(currency_code="EUR"), context)
    orchestrator.categorize_transaction(make_tx(), context, namespace="user-2")

    assert ai_client.categorize.call_count == 4


def test_failures_are_cached(ai_client: MagicMock, context: CategorizationContext) -> None:
    ai_client.categorize.side_effect = ServiceUnavailableError("down")
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    orchestrator.categorize_transaction(make_tx(), context)
    res = orchestrator.categorize_transaction(make_tx(), context)

    assert res.source_model == "fallback"
    ai_client.categorize.assert_called_once()


def test_default_and_explicit_timeout(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client, config=EngineConfig(ai_timeout_ms=4000))

    orchestrator.categorize_transaction(make_tx(amount=100), context)
    orchestrator.categorize_transaction(make_tx(amount=200), context, timeout=1.5)

    timeouts = [call.kwargs["timeout"] for call in ai_client.categorize.call_args_list]
    assert timeouts == [4.0, 1.5]


def test_ai_category_is_aligned_with_available_list(ai_client: MagicMock, context: CategorizationContext) -> None:
    ai_client.categorize.return_value = ai_result(
        category=CategoryRef(name="software & subscriptions", type="expense")
    )
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    res = orchestrator.categorize_transaction(make_tx(), context)

    assert res.category == SOFTWARE


@pytest.mark.parametrize(
    ("tx", "field"),
    [
        (make_tx(amount=0), "amount"),
        (make_tx(amount=-10), "amount"),
        (make_tx(description="   "), "description"),
        (make_tx(description="x" * 501), "description"),
        (make_tx(currency_code="XYZ"), "currency_code"),
    ],
)
def test_invalid_input_raises(ai_client: MagicMock, tx: Transaction, field: str) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    with pytest.raises(ValidationError) as excinfo:
        orchestrator.categorize_transaction(tx)

    assert excinfo.value.field == field
    ai_client.categorize.assert_not_called()


def test_currency_is_normalized(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    orchestrator.categorize_transaction(make_tx(currency_code="usd"), context)

    sent = ai_client.categorize.call_args.args[0]
    assert sent.currency_code == "USD"


@pytest.mark.anyio
async def test_async_entry_point(ai_client: MagicMock, context: CategorizationContext) -> None:
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    res = await orchestrator.acategorize_transaction(make_tx(), context)

    assert res.source_model == "ai"


def test_namespace_cannot_be_forged_through_description(ai_client: MagicMock, context: CategorizationContext) -> None:
    private = CategoryRef(id="alice-private", name="Alice Private", type="expense")
    ai_client.categorize.return_value = ai_result(category=private)
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    orchestrator.categorize_transaction(make_tx("adobe"), namespace="alice")
    ai_client.categorize.return_value = ai_result()
    res = orchestrator.categorize_transaction(make_tx("alice:adobe"), context)

    assert ai_client.categorize.call_count == 2
    assert res.category == SOFTWARE


def test_cache_key_is_opaque() -> None:
    key = CategorizationOrchestrator.cache_key(make_tx("alice:adobe"), namespace="bob")

    assert key.startswith("transaction_parse:")
    assert "alice" not in key
    assert "bob" not in key


def test_concurrent_misses_share_one_ai_call(ai_client: MagicMock, context: CategorizationContext) -> None:
    def slow_categorize(*args, **kwargs) -> CategorizationResult:
        time.sleep(0.3)
        return ai_result()

    ai_client.categorize.side_effect = slow_categorize
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(lambda _: orchestrator.categorize_transaction(make_tx(), context), range(5)))

    assert ai_client.categorize.call_count == 1
    assert all(res == results[0] for res in results)
    assert orchestrator.stats["cache_hit"] == 4
    assert orchestrator._flights == {}


def test_slow_provider_is_cut_off_at_timeout(ai_client: MagicMock, context: CategorizationContext) -> None:
    def hanging_categorize(*args, **kwargs) -> CategorizationResult:
        time.sleep(1.5)
        return ai_result()

    ai_client.categorize.side_effect = hanging_categorize
    orchestrator = CategorizationOrchestrator(ai_client=ai_client)

    started = time.monotonic()
    res = orchestrator.categorize_transaction(make_tx(), context, timeout=0.2)
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert res.source_model == "fallback"
    assert FALLBACK_WARNING in res.warnings
    assert orchestrator.stats["unavailable"] == 1
    orchestrator.shutdown()
