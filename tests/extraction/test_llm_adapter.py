from __future__ import annotations

import json
from concurrent.futures import TimeoutError as FutureTimeoutError
from unittest.mock import Mock, patch

import pytest

from rewind.breaker import CircuitBreakerRegistry
from rewind.cost.estimator import estimate_cost
from rewind.cost.ledger import BudgetLedger
from rewind.cost.models import CostBudget
from rewind.cost.store import BudgetStoreError, InMemoryBudgetStore, InMemoryUsageStore
from rewind.extraction.adapters.llm import LLMAdapter, _extract_content, build_guest_prompt
from rewind.extraction.models import ErrorKind, ExtractionMethod, ExtractionRequest

_REQUEST = ExtractionRequest(
    episode_id="ep-42",
    title="Building Rewind",
    description="We talk with Jane Doe about podcast archives and search.",
)


def _response(payload: object) -> dict[str, object]:
    return {"choices": [{"message": {"content": json.dumps(payload)}}]}


def _ledger() -> BudgetLedger:
    return BudgetLedger(store=InMemoryBudgetStore(), usage_store=InMemoryUsageStore())


def _spend(ledger: BudgetLedger) -> float:
    return ledger.current_budget().current_spend


class TestLLMAdapter:
    def test_success_returns_parsed_guests_and_charges_estimate(self) -> None:
        ledger = _ledger()
        registry = CircuitBreakerRegistry()
        adapter = LLMAdapter(ledger, registry=registry, sleep=Mock())

        with patch(
            "rewind.extraction.adapters.llm.completion",
            return_value=_response({"guests": [{"name": "Jane Doe", "confidence": 0.95}]}),
        ) as mock_completion:
            outcome = adapter.attempt(_REQUEST)

        expected_cost = estimate_cost(_REQUEST.text).estimated_cost
        assert outcome.ok is True
        assert [guest.name for guest in outcome.guests] == ["Jane Doe"]
        assert outcome.guests[0].source == "llm"
        assert outcome.cost == pytest.approx(expected_cost)
        assert _spend(ledger) == pytest.approx(expected_cost)
        kwargs = mock_completion.call_args.kwargs
        assert kwargs["max_tokens"] == 1000
        assert "Jane Doe" in kwargs["messages"][0]["content"]

    def test_budget_denial_skips_network_call(self) -> None:
        store = InMemoryBudgetStore()
        ledger = BudgetLedger(store=store, usage_store=InMemoryUsageStore())
        store.initialize_budget(
            ledger.current_period(),
            CostBudget(monthly_limit=100.0, current_spend=100.0, period_start="2026-10-01T00:00:00+00:00"),
        )
        registry = Mock()
        adapter = LLMAdapter(ledger, registry=registry, sleep=Mock())

        with patch("rewind.extraction.adapters.llm.completion") as mock_completion:
            outcome = adapter.attempt(_REQUEST)

        assert outcome.ok is False
        assert outcome.error_kind is ErrorKind.BudgetExceeded
        assert outcome.cost == 0.0
        mock_completion.assert_not_called()
        registry.record_failure.assert_not_called()

    def test_retries_transport_errors_with_backoff(self) -> None:
        sleep = Mock()
        adapter = LLMAdapter(_ledger(), sleep=sleep)

        with patch(
            "rewind.extraction.adapters.llm.completion",
            side_effect=[
                RuntimeError("connection reset"),
                RuntimeError("connection reset"),
                _response({"guests": [{"name": "Jane Doe", "confidence": 0.9}]}),
            ],
        ) as mock_completion:
            outcome = adapter.attempt(_REQUEST)

        assert outcome.ok is True
        assert mock_completion.call_count == 3
        assert [call.args[0] for call in sleep.call_args_list] == [1.0, 2.0]
        assert outcome.cost == pytest.approx(3 * estimate_cost(_REQUEST.text).estimated_cost)

    def test_exhausted_retries_charge_every_attempt_and_trip_breaker(self) -> None:
        ledger = _ledger()
        registry = Mock()
        adapter = LLMAdapter(ledger, registry=registry, sleep=Mock())

        with patch(
            "rewind.extraction.adapters.llm.completion",
            side_effect=RuntimeError("service unavailable"),
        ):
            outcome = adapter.attempt(_REQUEST)

        per_call = estimate_cost(_REQUEST.text).estimated_cost
        assert outcome.ok is False
        assert outcome.error_kind is ErrorKind.TransportError
        assert outcome.cost == pytest.approx(3 * per_call)
        assert _spend(ledger) == pytest.approx(3 * per_call)
        registry.record_failure.assert_called_once_with(ExtractionMethod.llm)

    def test_unreadable_budget_store_is_a_budget_denial(self) -> None:
        store = Mock()
        store.read_budget.side_effect = BudgetStoreError("Malformed budget row for 2026-10")
        registry = Mock()
        adapter = LLMAdapter(
            BudgetLedger(store=store, usage_store=InMemoryUsageStore()),
            registry=registry,
            sleep=Mock(),
        )

        with patch("rewind.extraction.adapters.llm.completion") as mock_completion:
            outcome = adapter.attempt(_REQUEST)

        assert outcome.error_kind is ErrorKind.BudgetExceeded
        mock_completion.assert_not_called()
        registry.record_failure.assert_not_called()

    def test_retries_are_authorized_against_remaining_budget(self) -> None:
        per_call = estimate_cost(_REQUEST.text).estimated_cost
        store = InMemoryBudgetStore()
        ledger = BudgetLedger(store=store, usage_store=InMemoryUsageStore(), monthly_limit=1.0)
        store.initialize_budget(
            ledger.current_period(),
            CostBudget(monthly_limit=1.0, current_spend=1.0 - 1.5 * per_call, period_start="2026-10-01T00:00:00+00:00"),
        )
        registry = Mock()
        sleep = Mock()
        adapter = LLMAdapter(ledger, registry=registry, sleep=sleep)

        with patch(
            "rewind.extraction.adapters.llm.completion",
            side_effect=RuntimeError("service unavailable"),
        ) as mock_completion:
            outcome = adapter.attempt(_REQUEST)

        assert mock_completion.call_count == 1
        assert outcome.ok is False
        assert outcome.error_kind is ErrorKind.BudgetExceeded
        assert outcome.cost == pytest.approx(per_call)
        assert _spend(ledger) <= 1.0
        registry.record_failure.assert_called_once_with(ExtractionMethod.llm)

    def test_timeout_is_reported_as_timeout(self) -> None:
        future = Mock()
        future.result.side_effect = FutureTimeoutError()
        executor = Mock()
        executor.submit.return_value = future
        adapter = LLMAdapter(_ledger(), timeout_s=15, executor=executor, sleep=Mock())

        outcome = adapter.attempt(_REQUEST)

        assert outcome.ok is False
        assert outcome.error_kind is ErrorKind.Timeout
        assert "timed out after 15s" in (outcome.error or "")
        assert executor.submit.call_count == 3
        future.result.assert_called_with(timeout=15)

    def test_malformed_response_is_success_with_no_guests(self) -> None:
        registry = Mock()
        adapter = LLMAdapter(_ledger(), registry=registry, sleep=Mock())

        with patch(
            "rewind.extraction.adapters.llm.completion",
            return_value={"choices": [{"message": {"content": "I could not find any guests."}}]},
        ) as mock_completion:
            outcome = adapter.attempt(_REQUEST)

        assert outcome.ok is True
        assert outcome.guests == []
        assert mock_completion.call_count == 1
        registry.record_success.assert_called_once_with(ExtractionMethod.llm)

    def test_missing_litellm_is_a_transport_error(self) -> None:
        adapter = LLMAdapter(_ledger(), max_attempts=1, sleep=Mock())
        with patch("rewind.extraction.adapters.llm.completion", None):
            outcome = adapter.attempt(_REQUEST)

        assert outcome.ok is False
        assert outcome.error_kind is ErrorKind.TransportError
        assert "LiteLLM is not installed" in (outcome.error or "")

    def test_passes_api_overrides(self) -> None:
        adapter = LLMAdapter(_ledger(), api_base="http://localhost:4000", api_key="sk-test", sleep=Mock())
        with patch(
            "rewind.extraction.adapters.llm.completion",
            return_value=_response({"guests": []}),
        ) as mock_completion:
            adapter.attempt(_REQUEST)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["api_key"] == "sk-test"


def test_extract_content_handles_objects_and_mappings() -> None:
    message = Mock(content="hello")
    choice = Mock(message=message)
    assert _extract_content(Mock(choices=[choice])) == "hello"
    assert _extract_content({"choices": []}) == ""
    assert _extract_content({"choices": [{"message": {"content": None}}]}) == ""


def test_prompt_includes_title_and_description() -> None:
    prompt = build_guest_prompt("My Title", "My description")
    assert 'TITLE: "My Title"' in prompt
    assert 'DESCRIPTION: "My description"' in prompt
