from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from time import perf_counter

from ledgerlens.core.settings import EngineConfig
from ledgerlens.domain.validation import FOCUS_AREAS, validate_focus_areas, validate_window
from ledgerlens.insights.anomalies import AnomalyDetector
from ledgerlens.insights.base import InsightGenerator, total
from ledgerlens.insights.cash_flow import CashFlowAnalyzer
from ledgerlens.insights.recommendations import RecommendationAnalyzer
from ledgerlens.insights.spending import SpendingTrendAnalyzer
from ledgerlens.logger import get_logger
from ledgerlens.models import Insight, InsightSummary, InsightWindow, Transaction

logger = get_logger(__name__)


def default_generators(config: EngineConfig) -> dict[str, InsightGenerator]:
    return {
        "spending_trends": SpendingTrendAnalyzer(config.major_category_percent_threshold),
        "anomalies": AnomalyDetector(config.anomaly_sigma_threshold),
        "cash_flow": CashFlowAnalyzer(),
        "recommendations": RecommendationAnalyzer(),
    }


def summarize(transactions: Sequence[Transaction]) -> InsightSummary:
    total_income = total(transactions, "income")
    total_expenses = total(transactions, "expense")
    return InsightSummary(
        total_transactions=len(transactions),
        total_income=total_income,
        total_expenses=total_expenses,
        net_income=total_income - total_expenses,
    )


@dataclass(frozen=True)
class InsightReport:
    """Insights of one call together with the batch they were computed from."""

    batch: list[Transaction]
    insights: list[Insight] = field(default_factory=list)

    @property
    def summary(self) -> InsightSummary:
        return summarize(self.batch)


class InsightOrchestrator:
    """Runs the requested analyzers over one batch in a fixed order."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        generators: dict[str, InsightGenerator] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.generators = generators or default_generators(self.config)

    def generate_insights(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        focus_areas: Iterable[str] = FOCUS_AREAS,
        previous_transactions: Sequence[Transaction] = (),
    ) -> list[Insight]:
        return self.build_report(transactions, window, focus_areas, previous_transactions).insights

    def build_report(
        self,
        transactions: Sequence[Transaction],
        window: InsightWindow,
        focus_areas: Iterable[str] = FOCUS_AREAS,
        previous_transactions: Sequence[Transaction] = (),
    ) -> InsightReport:
        validate_window(window)
        requested = set(validate_focus_areas(focus_areas))

        batch = self.prepare_batch(transactions, window)
        if not batch:
            logger.info("[INSIGHTS] No transactions between %s and %s", window.start_date, window.end_date)
            return InsightReport(batch=batch)

        started = perf_counter()
        insights: list[Insight] = []
        for area in FOCUS_AREAS:
            generator = self.generators.get(area)
            if area not in requested or generator is None:
                continue
            produced = generator.analyze(batch, window, previous_transactions)
            logger.debug("[INSIGHTS] %s produced %d insight(s)", area, len(produced))
            insights.extend(produced)
        elapsed_ms = (perf_counter() - started) * 1000

        logger.info(
            "[INSIGHTS] %d insight(s) from %d transaction(s) in %.1f ms",
            len(insights),
            len(batch),
            elapsed_ms,
        )
        if not insights:
            return InsightReport(batch=batch)
        # Even split of the total cost, not a per-insight timer.
        share = elapsed_ms / len(insights)
        return InsightReport(
            batch=batch,
            insights=[insight.model_copy(update={"processing_time_ms": share}) for insight in insights],
        )

    def prepare_batch(self, transactions: Sequence[Transaction], window: InsightWindow) -> list[Transaction]:
        """Keep in-window transactions, capped to the most recent configured maximum."""
        in_window = [t for t in transactions if window.contains(t.occurred_at)]
        dropped = len(transactions) - len(in_window)
        if dropped:
            logger.debug("[INSIGHTS] Ignored %d transaction(s) outside the window", dropped)

        limit = self.config.max_transactions_per_insight_call
        if len(in_window) > limit:
            logger.warning(
                "[INSIGHTS] Batch of %d exceeds limit %d; keeping the most recent",
                len(in_window),
                limit,
            )
            in_window = sorted(in_window, key=lambda t: t.occurred_at, reverse=True)[:limit]

        return sorted(in_window, key=lambda t: t.occurred_at)
