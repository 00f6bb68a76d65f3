import asyncio
import hashlib
import json
import threading
from collections import Counter
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass, field

from ledgerlens.classifiers.llm import AICategorizationClient
from ledgerlens.classifiers.rules import RuleBasedCategorizer
from ledgerlens.core.cache import TTLCache
from ledgerlens.core.settings import EngineConfig
from ledgerlens.domain.categories import find_category, find_category_by_id
from ledgerlens.domain.text import normalize_description
from ledgerlens.domain.validation import validate_transaction
from ledgerlens.errors import MalformedResponseError, ServiceUnavailableError
from ledgerlens.logger import get_logger
from ledgerlens.models import CategorizationContext, CategorizationResult, Transaction

logger = get_logger(__name__)

FALLBACK_WARNING = "AI service unavailable - using fallback categorization"


@dataclass
class _Flight:
    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0


class CategorizationOrchestrator:
    """Single decision point between the AI client and the rule-based fallback.

    Results, including fallback ones, are cached per normalized
    (description, amount, currency) so a failing provider is not hit again
    within the TTL. Concurrent misses on one key wait for the first caller
    instead of calling the provider themselves. The whole AI call, SDK
    retries included, is bounded by the caller's timeout.
    """

    def __init__(
        self,
        ai_client: AICategorizationClient | None = None,
        fallback: RuleBasedCategorizer | None = None,
        cache: TTLCache[CategorizationResult] | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.ai_client = ai_client
        self.fallback = fallback or RuleBasedCategorizer()
        self.cache = cache if cache is not None else TTLCache(ttl_ms=self.config.cache_ttl_ms, name="categorization")
        self.stats: Counter[str] = Counter()
        self._flights: dict[str, _Flight] = {}
        self._flights_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(thread_name_prefix="ai-categorize")

    @staticmethod
    def cache_key(transaction: Transaction, namespace: str | None = None) -> str:
        parts = [
            namespace,
            normalize_description(transaction.description),
            transaction.amount,
            transaction.currency_code.upper(),
        ]
        digest = hashlib.sha256(json.dumps(parts).encode("utf-8")).hexdigest()
        return f"transaction_parse:{digest}"

    def categorize_transaction(
        self,
        transaction: Transaction,
        context: CategorizationContext | None = None,
        *,
        namespace: str | None = None,
        timeout: float | None = None,
    ) -> CategorizationResult:
        transaction = validate_transaction(transaction)
        context = context or CategorizationContext()

        key = self.cache_key(transaction, namespace)
        cached = self._cached(key, transaction)
        if cached is not None:
            return cached

        with self._single_flight(key):
            cached = self._cached(key, transaction)
            if cached is not None:
                return cached
            result = self._categorize_uncached(transaction, context, timeout)
            self.cache.set(key, result)
        return result

    async def acategorize_transaction(
        self,
        transaction: Transaction,
        context: CategorizationContext | None = None,
        *,
        namespace: str | None = None,
        timeout: float | None = None,
    ) -> CategorizationResult:
        return await asyncio.to_thread(
            self.categorize_transaction,
            transaction,
            context,
            namespace=namespace,
            timeout=timeout,
        )

    def shutdown(self) -> None:
        """Stop accepting AI calls; calls already past their deadline are abandoned."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _cached(self, key: str, transaction: Transaction) -> CategorizationResult | None:
        cached = self.cache.get(key)
        if cached is not None:
            self.stats["cache_hit"] += 1
            logger.debug("[CATEGORIZE] Cache hit for '%s...'", transaction.description[:50])
        return cached

    @contextmanager
    def _single_flight(self, key: str) -> Iterator[None]:
        with self._flights_lock:
            flight = self._flights.setdefault(key, _Flight())
            flight.waiters += 1
        try:
            with flight.lock:
                yield
        finally:
            with self._flights_lock:
                flight.waiters -= 1
                if flight.waiters == 0:
                    del self._flights[key]

    def _call_ai(
        self,
        transaction: Transaction,
        context: CategorizationContext,
        budget: float,
    ) -> CategorizationResult:
        future = self._executor.submit(self.ai_client.categorize, transaction, context, timeout=budget)
        try:
            return future.result(timeout=budget)
        except FutureTimeoutError as exc:
            if not future.done():
                future.cancel()
                raise ServiceUnavailableError(f"categorization exceeded {budget:.1f} s budget") from exc
            raise

    def _categorize_uncached(
        self,
        transaction: Transaction,
        context: CategorizationContext,
        timeout: float | None,
    ) -> CategorizationResult:
        if self.ai_client is None:
            return self._fallback(transaction, context, "AI client not configured")

        budget = timeout if timeout is not None else self.config.ai_timeout_seconds
        try:
            result = self._reconcile(self._call_ai(transaction, context, budget), context)
        except MalformedResponseError as exc:
            self.stats["malformed"] += 1
            logger.warning("[CATEGORIZE] Malformed AI response: %s", exc)
            return self._fallback(transaction, context, "malformed response")
        except ServiceUnavailableError as exc:
            self.stats["unavailable"] += 1
            logger.warning("[CATEGORIZE] AI service unavailable: %s", exc)
            return self._fallback(transaction, context, "service unavailable")
        except Exception:
            self.stats["unavailable"] += 1
            logger.exception("[CATEGORIZE] Unexpected AI client failure")
            return self._fallback(transaction, context, "unexpected error")

        self.stats["ai"] += 1
        logger.debug(
            "[CATEGORIZE] AI returned '%s' (confidence: %d)",
            result.category.name if result.category else None,
            result.confidence,
        )
        return result

    def _fallback(
        self,
        transaction: Transaction,
        context: CategorizationContext,
        reason: str,
    ) -> CategorizationResult:
        self.stats["fallback"] += 1
        result = self.fallback.categorize(transaction, context)
        logger.info(
            "[CATEGORIZE] Fallback (%s): '%s...' -> '%s'",
            reason,
            transaction.description[:50],
            result.category.name if result.category else None,
        )
        return result.model_copy(update={"warnings": [*result.warnings, FALLBACK_WARNING]})

    @staticmethod
    def _reconcile(result: CategorizationResult, context: CategorizationContext) -> CategorizationResult:
        """Check an AI result and align its category with the caller's list."""
        category = result.category
        if category is None:
            raise MalformedResponseError("AI result has no category")
        if category.is_uncategorized or not context.available_categories:
            return result

        known = find_category_by_id(context.available_categories, category.id)
        if known is None:
            known = find_category(context.available_categories, category.name, category.type)
        if known is None:
            logger.debug("[CATEGORIZE] AI category '%s' is not in the available list", category.name)
            return result
        if known == category:
            return result
        return result.model_copy(update={"category": known})
