import json
import os
from time import perf_counter
from typing import Any

import httpx
import openai
from openai import OpenAI

from ledgerlens.domain.tags import normalize_tags
from ledgerlens.errors import MalformedResponseError, ServiceUnavailableError
from ledgerlens.logger import get_logger
from ledgerlens.models import (
    CategorizationContext,
    CategorizationResult,
    CategoryRef,
    ExtractedMetadata,
    ProviderExtras,
    Suggestion,
    Transaction,
)

from .base import Categorizer

logger = get_logger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3

SYSTEM_PROMPT = """You are a financial transaction categorization expert for small businesses.
Analyze the transaction description and extract relevant information.

Rules:
1. Pick the best category from the available categories; use "Uncategorized" if none fits.
2. Extract the vendor name if mentioned.
3. Identify the location if specified.
4. Generate a few short lowercase tags.
5. Clean up the description to be concise and standardized.
6. Provide a confidence score (0-100) based on the clarity of the information.

Available categories:
{categories}

Return a JSON object with this structure:
{{
  "category": {{"id": "category_id", "name": "category_name", "type": "expense|income"}},
  "confidence": 95,
  "processedDescription": "Clean description",
  "extractedMetadata": {{"vendor": "vendor_name", "location": "location_name", "tags": ["tag1", "tag2"]}},
  "suggestions": [{{"type": "category", "value": "Alternative category", "confidence": 70}}],
  "type": "expense|income"
}}"""


def _format_minor(amount: int) -> str:
    return f"{amount / 100:.2f}"


class AICategorizationClient(Categorizer):
    """Thin adapter over an OpenAI-compatible chat completion endpoint.

    Transport retries and per-attempt timeouts are delegated to the SDK client;
    the overall deadline for one categorization is enforced by the caller.
    Every failure is raised as ``ServiceUnavailableError`` or
    ``MalformedResponseError``; deciding what to do about it is the caller's job.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        recent_context_limit: int = 10,
    ) -> None:
        self.client = OpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
            timeout=httpx.Timeout(timeout),
            max_retries=max_retries,
        )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.recent_context_limit = recent_context_limit

    def categorize(
        self,
        transaction: Transaction,
        context: CategorizationContext,
        timeout: float | None = None,
    ) -> CategorizationResult:
        messages = [
            {"role": "system", "content": self.build_system_prompt(context)},
            {"role": "user", "content": self.build_user_prompt(transaction, context)},
        ]
        request: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }
        if timeout is not None:
            request["timeout"] = timeout

        started = perf_counter()
        try:
            response = self.client.chat.completions.create(**request)
        except openai.APITimeoutError as exc:
            raise ServiceUnavailableError(f"categorization request timed out: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise ServiceUnavailableError(f"categorization service unreachable: {exc}") from exc
        except openai.APIStatusError as exc:
            raise ServiceUnavailableError(
                f"categorization service returned HTTP {exc.status_code}"
            ) from exc
        except openai.OpenAIError as exc:
            raise ServiceUnavailableError(f"categorization service error: {exc}") from exc
        elapsed_ms = (perf_counter() - started) * 1000

        content = self._extract_content(response)
        model_name = getattr(response, "model", None)
        extras = ProviderExtras(
            model=model_name if isinstance(model_name, str) else self.model,
            processing_time_ms=round(elapsed_ms, 3),
            prompt_tokens=self._usage(response, "prompt_tokens"),
            completion_tokens=self._usage(response, "completion_tokens"),
        )
        return self.parse_response(content, transaction, extras)

    def build_system_prompt(self, context: CategorizationContext) -> str:
        if context.available_categories:
            categories = "\n".join(
                f"- {category.name} ({category.type})" + (f" [id: {category.id}]" if category.id else "")
                for category in context.available_categories
            )
        else:
            categories = "No custom categories provided"
        return SYSTEM_PROMPT.format(categories=categories)

    def build_user_prompt(self, transaction: Transaction, context: CategorizationContext) -> str:
        recent = context.recent_transactions[: self.recent_context_limit]
        if recent:
            recent_text = ", ".join(
                f'"{item.description}" - {item.category} - {_format_minor(item.amount)}' for item in recent
            )
        else:
            recent_text = "No recent transactions"
        return (
            "Transaction Details:\n"
            f'- Description: "{transaction.description}"\n'
            f"- Amount: {_format_minor(transaction.amount)} {transaction.currency_code}\n"
            f"- Type: {transaction.type}\n"
            f"- Date: {transaction.occurred_at.isoformat()}\n"
            f"- Recent transactions for context: {recent_text}\n\n"
            "Please categorize this transaction and extract relevant information."
        )

    def parse_response(
        self,
        content: str,
        transaction: Transaction,
        extras: ProviderExtras | None = None,
    ) -> CategorizationResult:
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(f"response is not valid JSON: {exc}", content) from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError("response is not a JSON object", content)

        transaction_type = payload.get("type")
        if transaction_type not in ("income", "expense"):
            transaction_type = transaction.type

        category = self._parse_category(payload, transaction_type, content)
        confidence = self._parse_confidence(payload.get("confidence"), content)

        processed = payload.get("processedDescription")
        if not isinstance(processed, str) or not processed.strip():
            raise MalformedResponseError("processedDescription is missing", content)

        return CategorizationResult(
            category=category,
            confidence=confidence,
            processed_description=processed.strip(),
            extracted_metadata=self._parse_metadata(payload.get("extractedMetadata")),
            suggestions=self._parse_suggestions(payload.get("suggestions")),
            source_model="ai",
            transaction_type=transaction_type,
            provider_extras=extras,
        )

    @staticmethod
    def _parse_category(payload: dict[str, Any], transaction_type: str, content: str) -> CategoryRef:
        raw = payload.get("category")
        if raw is None and payload.get("uncategorized") is True:
            return CategoryRef.uncategorized(transaction_type)  # type: ignore[arg-type]
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, dict):
            raise MalformedResponseError("category is missing", content)

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            raise MalformedResponseError("category name is missing", content)
        if name.strip().lower() == "uncategorized":
            return CategoryRef.uncategorized(transaction_type)  # type: ignore[arg-type]

        category_type = raw.get("type")
        if category_type not in ("income", "expense"):
            category_type = transaction_type
        category_id = raw.get("id")
        return CategoryRef(
            id=str(category_id) if category_id not in (None, "") else None,
            name=name.strip(),
            type=category_type,
        )

    @staticmethod
    def _parse_confidence(raw: Any, content: str) -> int:
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise MalformedResponseError("confidence is missing", content)
        if not 0 <= raw <= 100:
            raise MalformedResponseError(f"confidence {raw} is outside 0..100", content)
        return int(round(raw))

    @staticmethod
    def _parse_metadata(raw: Any) -> ExtractedMetadata:
        if not isinstance(raw, dict):
            return ExtractedMetadata()
        vendor = raw.get("vendor")
        location = raw.get("location")
        tags = raw.get("tags")
        return ExtractedMetadata(
            vendor=vendor.strip() or None if isinstance(vendor, str) else None,
            location=location.strip() or None if isinstance(location, str) else None,
            tags=normalize_tags(tags if isinstance(tags, list) else []),
        )

    @staticmethod
    def _parse_suggestions(raw: Any) -> list[Suggestion]:
        if not isinstance(raw, list):
            return []
        suggestions: list[Suggestion] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            kind = item.get("type")
            value = item.get("value")
            confidence = item.get("confidence")
            if not isinstance(kind, str) or not isinstance(value, str):
                continue
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                continue
            suggestions.append(
                Suggestion(type=kind, value=value, confidence=int(round(min(max(confidence, 0), 100))))
            )
        return suggestions

    @staticmethod
    def _extract_content(response: object) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            raise MalformedResponseError("response has no choices")
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponseError("response has no content")
        return content

    @staticmethod
    def _usage(response: object, name: str) -> int | None:
        usage = getattr(response, "usage", None)
        value = getattr(usage, name, None)
        return value if isinstance(value, int) else None

    def check_health(self) -> bool:
        try:
            models = self.client.models.list()
        except openai.OpenAIError as exc:
            logger.error("[AI] Health check failed: %s", exc)
            return False
        return bool(getattr(models, "data", None))
