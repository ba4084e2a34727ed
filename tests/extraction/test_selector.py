from __future__ import annotations

from unittest.mock import Mock

from rewind.breaker import CircuitBreakerRegistry
from rewind.cost.models import MethodRecommendation
from rewind.extraction.models import ExtractionMethod, ExtractionRequest
from rewind.extraction.selector import StrategySelector

_REQUEST = ExtractionRequest(episode_id="ep-1", title="Title", description="Description")


def _open(registry: CircuitBreakerRegistry, method: ExtractionMethod) -> None:
    breaker = registry.get(method)
    assert breaker is not None
    for _ in range(breaker.config.failure_threshold):
        breaker.record_failure()


def _ledger(method: ExtractionMethod) -> Mock:
    ledger = Mock()
    ledger.recommend_method.return_value = MethodRecommendation(
        method=method,
        reason="Complex content benefits from LLM",
        estimated_cost=0.001,
    )
    return ledger


def test_follows_budget_recommendation_when_circuits_closed() -> None:
    ledger = _ledger(ExtractionMethod.llm)
    selection = StrategySelector(CircuitBreakerRegistry(), ledger).select(_REQUEST)

    assert selection.method is ExtractionMethod.llm
    assert selection.circuit_fallback is False
    ledger.recommend_method.assert_called_once_with(_REQUEST.text)


def test_primary_circuit_open_selects_ner_without_consulting_budget() -> None:
    registry = CircuitBreakerRegistry()
    _open(registry, ExtractionMethod.llm)
    ledger = _ledger(ExtractionMethod.llm)

    selection = StrategySelector(registry, ledger).select(_REQUEST)

    assert selection.method is ExtractionMethod.ner
    assert selection.circuit_fallback is True
    ledger.recommend_method.assert_not_called()


def test_both_remote_circuits_open_selects_heuristic() -> None:
    registry = CircuitBreakerRegistry()
    _open(registry, ExtractionMethod.llm)
    _open(registry, ExtractionMethod.ner)

    selection = StrategySelector(registry, _ledger(ExtractionMethod.llm)).select(_REQUEST)

    assert selection.method is ExtractionMethod.heuristic
    assert selection.reason == "both remote backends unavailable"


def test_recommended_ner_with_open_circuit_moves_to_heuristic() -> None:
    registry = CircuitBreakerRegistry()
    _open(registry, ExtractionMethod.ner)

    selection = StrategySelector(registry, _ledger(ExtractionMethod.ner)).select(_REQUEST)

    assert selection.method is ExtractionMethod.heuristic
    assert selection.reason == "ner circuit open"
    assert selection.circuit_fallback is True
