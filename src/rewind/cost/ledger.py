"""Monthly budget ledger: authorizes, commits and reports AI spend."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from rewind.extraction.models import ExtractionMethod

from .estimator import NER_REQUEST_COST, estimate_cost, price_units
from .models import BudgetDecision, CostBudget, MethodRecommendation, UsageAnalytics
from .store import BudgetStore, BudgetStoreError, InMemoryBudgetStore, InMemoryUsageStore, UsageStore

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_BUDGET = 100.0
DEFAULT_WARNING_THRESHOLD = 0.8

# Below this share of the monthly limit left, stop choosing the premium backend.
CONSERVE_BUDGET_RATIO = 0.1

# Texts shorter than this do not justify the premium backend.
SHORT_CONTENT_CHARS = 500

# Usage unit kinds recorded per day.
LLM_INPUT_UNITS = "llmInputUnits"
LLM_OUTPUT_UNITS = "llmOutputUnits"
NER_REQUESTS = "nerRequests"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BudgetLedger:
    """
    Tracks cumulative spend against a monthly budget held in a ``BudgetStore``.

    The store owns the authoritative counter and settles concurrent writers;
    the ledger itself only remembers, under a lock, which periods already warned.
    """

    def __init__(
        self,
        store: BudgetStore | None = None,
        usage_store: UsageStore | None = None,
        monthly_limit: float = DEFAULT_MONTHLY_BUDGET,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store: BudgetStore = store if store is not None else InMemoryBudgetStore()
        self._usage_store: UsageStore = usage_store if usage_store is not None else InMemoryUsageStore()
        self.monthly_limit = monthly_limit
        self.warning_threshold = warning_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._warned_periods: set[str] = set()

    def current_period(self) -> str:
        return self._clock().strftime("%Y-%m")

    def current_budget(self) -> CostBudget:
        """Return this period's budget, materializing a zero-spend row when absent.

        Raises ``BudgetStoreError`` when the store cannot be read.
        """
        period = self.current_period()
        budget = self._store.read_budget(period)
        if budget is not None:
            return budget

        budget = CostBudget(
            monthly_limit=self.monthly_limit,
            current_spend=0.0,
            warning_threshold=self.warning_threshold,
            period_start=self._clock().isoformat(),
        )
        logger.info("Initializing AI budget for %s with limit $%.2f", period, budget.monthly_limit)
        try:
            self._store.initialize_budget(period, budget)
        except BudgetStoreError:
            logger.exception("Could not persist new budget for %s", period)
            return budget
        # The store keeps whichever row was written first.
        return self._store.read_budget(period) or budget

    def authorize(self, estimated_cost: float) -> BudgetDecision:
        """Allow the spend unless it would push this period past its monthly limit."""
        try:
            budget = self.current_budget()
        except BudgetStoreError as exc:
            logger.error("Budget store unavailable, denying spend of $%.6f: %s", estimated_cost, exc)
            return BudgetDecision(
                allowed=False,
                reason="budget store unavailable",
                current_spend=0.0,
                remaining_budget=0.0,
            )

        remaining = budget.remaining
        projected = budget.current_spend + estimated_cost
        if projected > budget.monthly_limit:
            return BudgetDecision(
                allowed=False,
                reason="would exceed monthly budget",
                current_spend=budget.current_spend,
                remaining_budget=remaining,
            )

        self._maybe_warn(budget, projected)
        return BudgetDecision(
            allowed=True,
            current_spend=budget.current_spend,
            remaining_budget=remaining,
        )

    def _maybe_warn(self, budget: CostBudget, projected: float) -> None:
        if projected <= budget.monthly_limit * budget.warning_threshold:
            return
        period = self.current_period()
        with self._lock:
            if period in self._warned_periods:
                return
            self._warned_periods.add(period)
        logger.warning(
            "Approaching AI budget limit for %s: $%.4f of $%.2f",
            period,
            projected,
            budget.monthly_limit,
        )

    def commit(self, actual_cost: float) -> None:
        """Add *actual_cost* to this period's spend. Store failures are logged, never raised."""
        if actual_cost <= 0:
            return
        period = self.current_period()
        try:
            # Make sure the row exists before the atomic add.
            self.current_budget()
            self._store.increment_spend(period, actual_cost)
        except BudgetStoreError:
            logger.exception("Failed to commit $%.6f spend for %s", actual_cost, period)

    def track_usage(
        self,
        method: ExtractionMethod,
        units_by_kind: dict[str, int],
        cost: float,
        episode_id: str,
        episodes: int = 1,
    ) -> None:
        """Commit spend and record daily usage telemetry (fire-and-forget)."""
        self.commit(cost)
        today = self._clock().strftime("%Y-%m-%d")
        try:
            self._usage_store.record_daily_usage(today, units_by_kind, cost, episodes)
        except Exception:
            logger.exception("Failed to record %s usage for episode %s", method.value, episode_id)
            return
        logger.info(
            "%s usage tracked for episode %s: %s = $%.6f",
            method.value,
            episode_id,
            units_by_kind,
            cost,
        )

    def recommend_method(self, text: str) -> MethodRecommendation:
        """Pick the preferred backend for *text* from budget state alone. Does not mutate state."""
        estimate = estimate_cost(text)
        try:
            budget = self._peek_budget()
        except BudgetStoreError as exc:
            logger.error("Budget store unavailable while recommending a method: %s", exc)
            return MethodRecommendation(
                method=ExtractionMethod.heuristic,
                reason="Budget store unavailable",
            )

        remaining = budget.remaining
        if budget.current_spend + estimate.estimated_cost > budget.monthly_limit:
            if budget.current_spend + NER_REQUEST_COST <= budget.monthly_limit:
                return MethodRecommendation(
                    method=ExtractionMethod.ner,
                    reason="LLM would exceed monthly budget",
                    estimated_cost=NER_REQUEST_COST,
                )
            return MethodRecommendation(
                method=ExtractionMethod.heuristic,
                reason="Monthly budget exhausted",
            )

        if remaining < budget.monthly_limit * CONSERVE_BUDGET_RATIO:
            return MethodRecommendation(
                method=ExtractionMethod.ner,
                reason="Conserving budget - less than 10% remaining",
                estimated_cost=NER_REQUEST_COST,
            )

        if len(text) < SHORT_CONTENT_CHARS:
            return MethodRecommendation(
                method=ExtractionMethod.ner,
                reason="Short content - NER sufficient",
                estimated_cost=NER_REQUEST_COST,
            )

        return MethodRecommendation(
            method=ExtractionMethod.llm,
            reason="Complex content benefits from LLM",
            estimated_cost=estimate.estimated_cost,
        )

    def _peek_budget(self) -> CostBudget:
        budget = self._store.read_budget(self.current_period())
        if budget is not None:
            return budget
        return CostBudget(
            monthly_limit=self.monthly_limit,
            warning_threshold=self.warning_threshold,
            period_start=self._clock().isoformat(),
        )

    def usage_analytics(self, days: int = 30) -> UsageAnalytics:
        """Aggregate the last *days* of usage. Raises ``BudgetStoreError`` on store failure."""
        end = self._clock()
        start = end - timedelta(days=days)
        daily = self._usage_store.read_daily_usage(
            start.strftime("%Y-%m-%d"),
            end.strftime("%Y-%m-%d"),
        )

        total_cost = sum(day.total_cost for day in daily)
        episodes = sum(day.episodes_processed for day in daily)
        llm_cost = sum(
            price_units(
                day.units_by_kind.get(LLM_INPUT_UNITS, 0),
                day.units_by_kind.get(LLM_OUTPUT_UNITS, 0),
            )
            for day in daily
        )
        ner_cost = sum(day.units_by_kind.get(NER_REQUESTS, 0) * NER_REQUEST_COST for day in daily)

        return UsageAnalytics(
            days=days,
            total_cost=total_cost,
            episodes_processed=episodes,
            average_cost_per_episode=total_cost / episodes if episodes > 0 else 0.0,
            cost_by_method={
                ExtractionMethod.llm.value: llm_cost,
                ExtractionMethod.ner.value: ner_cost,
            },
            daily_usage=daily,
        )
