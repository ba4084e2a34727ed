"""Primary backend selection from circuit breaker and budget state."""

from __future__ import annotations

import logging

from rewind.breaker.registry import CircuitBreakerRegistry
from rewind.cost.ledger import BudgetLedger
from rewind.cost.models import MethodRecommendation

from .models import FALLBACK_ORDER, ExtractionMethod, ExtractionRequest

logger = logging.getLogger(__name__)


class StrategySelector:
    """
    Decide which backend to try first for a request.

    Breaker state is consulted before cost: with the premium backend's circuit
    open, the choice is NER if its circuit allows, otherwise the heuristic.
    Otherwise the ledger's budget policy decides, and a recommendation whose
    circuit is open is moved down the fallback order.
    """

    def __init__(self, registry: CircuitBreakerRegistry, ledger: BudgetLedger) -> None:
        self._registry = registry
        self._ledger = ledger

    def select(self, request: ExtractionRequest) -> MethodRecommendation:
        if not self._registry.is_available(ExtractionMethod.llm):
            if self._registry.is_available(ExtractionMethod.ner):
                return MethodRecommendation(
                    method=ExtractionMethod.ner,
                    reason="primary circuit open",
                    circuit_fallback=True,
                )
            return MethodRecommendation(
                method=ExtractionMethod.heuristic,
                reason="both remote backends unavailable",
                circuit_fallback=True,
            )

        recommendation = self._ledger.recommend_method(request.text)
        if self._registry.is_available(recommendation.method):
            return recommendation

        start = FALLBACK_ORDER.index(recommendation.method) + 1
        for method in FALLBACK_ORDER[start:]:
            if self._registry.is_available(method):
                logger.info(
                    "Recommended %s circuit is open for episode %s, selecting %s",
                    recommendation.method.value,
                    request.episode_id,
                    method.value,
                )
                return MethodRecommendation(
                    method=method,
                    reason=f"{recommendation.method.value} circuit open",
                    circuit_fallback=True,
                )

        # Heuristic has no breaker, so this is only reached with a custom registry.
        return MethodRecommendation(
            method=ExtractionMethod.heuristic,
            reason="no backend available",
            circuit_fallback=True,
        )
