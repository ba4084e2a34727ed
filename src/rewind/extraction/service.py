"""ExtractionOrchestrator - strategy selection, sequential fallback and attempt accounting."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from pydantic import BaseModel, Field

from rewind.breaker.models import BreakerSnapshot
from rewind.breaker.registry import CircuitBreakerRegistry
from rewind.config import Settings, load_settings
from rewind.cost.ledger import BudgetLedger
from rewind.cost.models import MethodRecommendation
from rewind.cost.store import DynamoBudgetStore, DynamoUsageStore

from .adapters import ExtractionAdapter, HeuristicAdapter, LLMAdapter, NERAdapter
from .history import AttemptHistory
from .models import (
    FALLBACK_ORDER,
    ErrorKind,
    ExtractionAttempt,
    ExtractionMethod,
    ExtractionRequest,
    ExtractionResult,
)
from .selector import StrategySelector

logger = logging.getLogger(__name__)


class HealthMetrics(BaseModel):
    """Read-only snapshot polled by dashboards."""

    circuit_breakers: dict[str, BreakerSnapshot] = Field(default_factory=dict)
    recent_success_rate: float = Field(ge=0.0, le=1.0)
    average_processing_time_ms: float = Field(
        ge=0.0,
        description="Mean end-to-end request time over the last 20 requests, fallbacks included",
    )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ExtractionOrchestrator:
    """
    Runs guest extraction for one episode at a time.

    The selector picks a primary backend; that backend is tried first and the
    rest follow in ``FALLBACK_ORDER``. Attempts are strictly sequential. A
    backend whose circuit is open is skipped and reported as
    ``BackendUnavailable``. The first successful adapter wins; if none
    succeeds the result carries ``success=False`` and one error per backend.
    ``extract`` never raises.
    """

    def __init__(
        self,
        adapters: Mapping[ExtractionMethod, ExtractionAdapter],
        registry: CircuitBreakerRegistry,
        ledger: BudgetLedger,
        history: AttemptHistory | None = None,
        selector: StrategySelector | None = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._registry = registry
        self._ledger = ledger
        self._history = history or AttemptHistory()
        self._selector = selector or StrategySelector(registry, ledger)

    @property
    def history(self) -> AttemptHistory:
        return self._history

    @property
    def ledger(self) -> BudgetLedger:
        return self._ledger

    def extract_guests(self, episode_id: str, title: str, description: str) -> ExtractionResult:
        """Keyword entry point used by the handler layer."""
        return self.extract(
            ExtractionRequest(episode_id=episode_id, title=title, description=description)
        )

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        start = time.monotonic()
        selection = self._select(request)
        logger.info(
            "Episode %s: using %s for guest extraction (%s)",
            request.episode_id,
            selection.method.value,
            selection.reason,
        )

        errors: list[str] = []
        total_cost = 0.0

        for method in self._attempt_order(selection.method):
            adapter = self._adapters.get(method)
            if adapter is None:
                errors.append(f"{method.value}: {ErrorKind.BackendUnavailable.value}: not configured")
                continue
            if not self._registry.is_available(method):
                errors.append(f"{method.value}: {ErrorKind.BackendUnavailable.value}: circuit open")
                logger.info("Skipping %s for episode %s: unavailable", method.value, request.episode_id)
                continue

            if method is not selection.method:
                logger.info("Attempting %s fallback for episode %s", method.value, request.episode_id)

            attempt_start = time.monotonic()
            outcome = adapter.attempt(request)
            total_cost += outcome.cost
            self._history.record(
                ExtractionAttempt(
                    method=method,
                    success=outcome.ok,
                    error=None if outcome.ok else outcome.describe_error(),
                    cost=outcome.cost,
                    duration_ms=_elapsed_ms(attempt_start),
                )
            )

            if outcome.ok:
                result = ExtractionResult(
                    guests=outcome.guests,
                    method=method,
                    success=True,
                    fallback_used=method is not selection.method or selection.circuit_fallback,
                    errors=errors,
                    cost=total_cost,
                    processing_time_ms=_elapsed_ms(start),
                )
                logger.info(
                    "Guest extraction completed for episode %s: %d guests via %s (%dms)",
                    request.episode_id,
                    len(result.guests),
                    method.value,
                    result.processing_time_ms,
                )
                self._history.record_request(result.processing_time_ms)
                return result

            errors.append(outcome.describe_error())

        logger.error(
            "All extraction methods failed for episode %s: %s",
            request.episode_id,
            "; ".join(errors),
        )
        result = ExtractionResult(
            guests=[],
            method=None,
            success=False,
            fallback_used=False,
            errors=errors,
            error_kind=ErrorKind.AllMethodsExhausted,
            cost=total_cost,
            processing_time_ms=_elapsed_ms(start),
        )
        self._history.record_request(result.processing_time_ms)
        return result

    def _select(self, request: ExtractionRequest) -> MethodRecommendation:
        try:
            return self._selector.select(request)
        except Exception:
            logger.exception("Strategy selection failed for episode %s", request.episode_id)
            return MethodRecommendation(
                method=ExtractionMethod.heuristic,
                reason="strategy selection failed",
            )

    @staticmethod
    def _attempt_order(primary: ExtractionMethod) -> list[ExtractionMethod]:
        return [primary, *(method for method in FALLBACK_ORDER if method is not primary)]

    def get_health_metrics(self) -> HealthMetrics:
        return HealthMetrics(
            circuit_breakers=self._registry.snapshot(),
            recent_success_rate=self._history.health(),
            average_processing_time_ms=self._history.average_processing_time_ms(),
        )


def build_orchestrator(settings: Settings | None = None) -> ExtractionOrchestrator:
    """Wire the production collaborators described by *settings*."""
    settings = settings or load_settings()

    if settings.budget_backend == "dynamodb":
        ledger = BudgetLedger(
            store=DynamoBudgetStore(settings.budget_table, region_name=settings.aws_region),
            usage_store=DynamoUsageStore(settings.usage_table, region_name=settings.aws_region),
            monthly_limit=settings.monthly_budget,
            warning_threshold=settings.warning_threshold,
        )
    else:
        ledger = BudgetLedger(
            monthly_limit=settings.monthly_budget,
            warning_threshold=settings.warning_threshold,
        )

    registry = CircuitBreakerRegistry()
    adapters: dict[ExtractionMethod, ExtractionAdapter] = {
        ExtractionMethod.llm: LLMAdapter(
            ledger,
            registry,
            model_name=settings.llm_model,
            timeout_s=settings.llm_timeout_s,
            max_tokens=settings.llm_max_tokens,
            api_base=settings.llm_api_base,
            api_key=settings.llm_api_key,
        ),
        ExtractionMethod.ner: NERAdapter(
            ledger,
            registry,
            region_name=settings.aws_region,
            timeout_s=settings.ner_timeout_s,
        ),
        ExtractionMethod.heuristic: HeuristicAdapter(registry),
    }
    return ExtractionOrchestrator(
        adapters=adapters,
        registry=registry,
        ledger=ledger,
        history=AttemptHistory(settings.history_capacity),
    )
