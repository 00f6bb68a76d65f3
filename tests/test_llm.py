import json
from collections.abc import Generator
from datetime import date
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from ledgerlens.classifiers.llm import AICategorizationClient
from ledgerlens.errors import MalformedResponseError, ServiceUnavailableError
from ledgerlens.models import CategorizationContext, CategoryRef, RecentTransaction, Transaction


def _response(payload: Any) -> SimpleNamespace:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model="gpt-4o-mini-2024-07-18",
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=40),
    )


VALID_PAYLOAD = {
    "category": {"id": "cat-software", "name": "Software & Subscriptions", "type": "expense"},
    "confidence": 95,
    "processedDescription": "Adobe Creative Cloud Subscription",
    "extractedMetadata": {"vendor": "Adobe", "location": None, "tags": ["Software", "subscription", "software"]},
    "suggestions": [{"type": "category", "value": "Marketing & Advertising", "confidence": 20}],
    "type": "expense",
}


@pytest.fixture
def mock_openai_client() -> Generator[MagicMock, None, None]:
    with patch("ledgerlens.classifiers.llm.OpenAI") as mock:
        yield mock


@pytest.fixture
def transaction() -> Transaction:
    return Transaction(
        description="Adobe Creative Cloud monthly subscription",
        amount=5499,
        currency_code="USD",
        type="expense",
        occurred_at=date(2025, 1, 15),
    )


@pytest.fixture
def context() -> CategorizationContext:
    return CategorizationContext(
        available_categories=[CategoryRef(id="cat-software", name="Software & Subscriptions", type="expense")],
    )


def test_ai_categorize(mock_openai_client: MagicMock, transaction: Transaction, context: CategorizationContext) -> None:
    mock_instance = mock_openai_client.return_value
    mock_instance.chat.completions.create.return_value = _response(VALID_PAYLOAD)

    client = AICategorizationClient(api_key="sk-fake")
    res = client.categorize(transaction, context, timeout=12.5)

    assert res.source_model == "ai"
    assert res.category is not None
    assert res.category.id == "cat-software"
    assert res.confidence == 95
    assert res.processed_description == "Adobe Creative Cloud Subscription"
    assert res.extracted_metadata.vendor == "Adobe"
    assert res.extracted_metadata.location is None
    assert res.extracted_metadata.tags == ["software", "subscription"]
    assert res.suggestions[0].value == "Marketing & Advertising"
    assert res.provider_extras is not None
    assert res.provider_extras.prompt_tokens == 120
    assert res.provider_extras.model == "gpt-4o-mini-2024-07-18"

    mock_instance.chat.completions.create.assert_called_once()
    kwargs = mock_instance.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["temperature"] == 0.1
    assert kwargs["timeout"] == 12.5
    assert "Software & Subscriptions (expense)" in kwargs["messages"][0]["content"]


def test_client_configures_timeout_and_retries(mock_openai_client: MagicMock) -> None:
    AICategorizationClient(api_key="sk-fake", timeout=30.0, max_retries=3)

    kwargs = mock_openai_client.call_args.kwargs
    assert kwargs["max_retries"] == 3
    assert kwargs["timeout"] == httpx.Timeout(30.0)


def test_uncategorized_is_flagged(mock_openai_client: MagicMock, transaction: Transaction, context: CategorizationContext) -> None:
    payload = dict(VALID_PAYLOAD, category={"name": "Uncategorized"}, confidence=30)
    mock_openai_client.return_value.chat.completions.create.return_value = _response(payload)

    res = AICategorizationClient(api_key="sk-fake").categorize(transaction, context)

    assert res.category is not None
    assert res.category.is_uncategorized


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        "[1, 2, 3]",
        {k: v for k, v in VALID_PAYLOAD.items() if k != "processedDescription"},
        {k: v for k, v in VALID_PAYLOAD.items() if k != "category"},
        dict(VALID_PAYLOAD, confidence=150),
        dict(VALID_PAYLOAD, confidence="high"),
    ],
)
def test_malformed_payloads(
    mock_openai_client: MagicMock, transaction: Transaction, context: CategorizationContext, payload: Any
) -> None:
    mock_openai_client.return_value.chat.completions.create.return_value = _response(payload)

    with pytest.raises(MalformedResponseError):
        AICategorizationClient(api_key="sk-fake").categorize(transaction, context)


def test_empty_content_is_malformed(mock_openai_client: MagicMock, transaction: Transaction, context: CategorizationContext) -> None:
    mock_openai_client.return_value.chat.completions.create.return_value = _response("")

    with pytest.raises(MalformedResponseError):
        AICategorizationClient(api_key="sk-fake").categorize(transaction, context)


def test_timeout_is_service_unavailable(
    mock_openai_client: MagicMock, transaction: Transaction, context: CategorizationContext
) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    mock_openai_client.return_value.chat.completions.create.side_effect = openai.APITimeoutError(request=request)

    with pytest.raises(ServiceUnavailableError):
        AICategorizationClient(api_key="sk-fake").categorize(transaction, context)


def test_connection_error_is_service_unavailable(
    mock_openai_client: MagicMock, transaction: Transaction, context: CategorizationContext
) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    mock_openai_client.return_value.chat.completions.create.side_effect = openai.APIConnectionError(request=request)

    with pytest.raises(ServiceUnavailableError):
        AICategorizationClient(api_key="sk-fake").categorize(transaction, context)


def test_recent_context_is_bounded(mock_openai_client: MagicMock, transaction: Transaction) -> None:
    context = CategorizationContext(
        recent_transactions=[
            RecentTransaction(description=f"Recent {i}", category="Office Supplies", amount=1000 + i)
            for i in range(5)
        ]
    )
    client = AICategorizationClient(api_key="sk-fake", recent_context_limit=2)

    prompt = client.build_user_prompt(transaction, context)

    assert '"Recent 0"' in prompt
    assert '"Recent 1"' in prompt
    assert '"Recent 2"' not in prompt
    assert "54.99 USD" in prompt
