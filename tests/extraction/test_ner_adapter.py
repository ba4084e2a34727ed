from __future__ import annotations

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from rewind.cost.estimator import NER_REQUEST_COST
from rewind.cost.ledger import BudgetLedger
from rewind.cost.models import CostBudget
from rewind.cost.store import InMemoryBudgetStore, InMemoryUsageStore
from rewind.extraction.adapters.ner import MAX_TEXT_CHARS, NERAdapter
from rewind.extraction.models import ErrorKind, ExtractionMethod, ExtractionRequest

_REQUEST = ExtractionRequest(
    episode_id="ep-7",
    title="Weekly roundup",
    description="Jane Doe and Acme Corp discuss the Boston marathon with John Smith.",
)


def _ledger() -> BudgetLedger:
    return BudgetLedger(store=InMemoryBudgetStore(), usage_store=InMemoryUsageStore())


def _client(entities: list[dict[str, object]]) -> Mock:
    client = Mock()
    client.detect_entities.return_value = {"Entities": entities}
    return client


def test_keeps_confident_person_entities() -> None:
    client = _client(
        [
            {"Type": "PERSON", "Text": "Jane Doe", "Score": 0.99},
            {"Type": "ORGANIZATION", "Text": "Acme Corp", "Score": 0.99},
            {"Type": "PERSON", "Text": "John Smith", "Score": 0.85},
            {"Type": "PERSON", "Text": "Ann Lee", "Score": 0.8},
            {"Type": "PERSON", "Text": "Boston", "Score": 0.42},
        ]
    )
    ledger = _ledger()

    outcome = NERAdapter(ledger, client=client).attempt(_REQUEST)

    assert outcome.ok is True
    assert [guest.name for guest in outcome.guests] == ["Jane Doe", "John Smith"]
    assert all(guest.source == "ner" for guest in outcome.guests)
    assert outcome.guests[0].confidence == 0.99
    assert outcome.cost == NER_REQUEST_COST
    assert ledger.current_budget().current_spend == pytest.approx(NER_REQUEST_COST)


def test_truncates_text_and_sets_language() -> None:
    client = _client([])
    request = ExtractionRequest(episode_id="ep-8", title="T", description="x" * 9000)

    NERAdapter(_ledger(), client=client).attempt(request)

    kwargs = client.detect_entities.call_args.kwargs
    assert len(kwargs["Text"]) == MAX_TEXT_CHARS
    assert kwargs["LanguageCode"] == "en"


def test_duplicate_entities_collapse() -> None:
    client = _client(
        [
            {"Type": "PERSON", "Text": "Jane Doe", "Score": 0.95},
            {"Type": "PERSON", "Text": "jane doe", "Score": 0.9},
        ]
    )
    outcome = NERAdapter(_ledger(), client=client).attempt(_REQUEST)
    assert [guest.name for guest in outcome.guests] == ["Jane Doe"]


def test_client_error_is_transport_error_and_counts_against_breaker() -> None:
    client = Mock()
    client.detect_entities.side_effect = ClientError(
        {"Error": {"Code": "ThrottlingException", "Message": "slow down"}},
        "DetectEntities",
    )
    registry = Mock()

    outcome = NERAdapter(_ledger(), registry=registry, client=client).attempt(_REQUEST)

    assert outcome.ok is False
    assert outcome.error_kind is ErrorKind.TransportError
    assert outcome.cost == NER_REQUEST_COST
    registry.record_failure.assert_called_once_with(ExtractionMethod.ner)


def test_read_timeout_is_timeout() -> None:
    client = Mock()
    client.detect_entities.side_effect = ReadTimeoutError(endpoint_url="https://comprehend.us-east-1.amazonaws.com")

    outcome = NERAdapter(_ledger(), client=client).attempt(_REQUEST)

    assert outcome.ok is False
    assert outcome.error_kind is ErrorKind.Timeout


def test_exhausted_budget_denies_without_calling_comprehend() -> None:
    store = InMemoryBudgetStore()
    ledger = BudgetLedger(store=store, usage_store=InMemoryUsageStore())
    store.initialize_budget(
        ledger.current_period(),
        CostBudget(monthly_limit=100.0, current_spend=100.0, period_start="2026-10-01T00:00:00+00:00"),
    )
    client = _client([])
    registry = Mock()

    outcome = NERAdapter(ledger, registry=registry, client=client).attempt(_REQUEST)

    assert outcome.error_kind is ErrorKind.BudgetExceeded
    client.detect_entities.assert_not_called()
    registry.record_failure.assert_not_called()
