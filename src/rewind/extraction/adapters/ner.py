"""AWS Comprehend entity recognition backend."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from rewind.breaker.registry import CircuitBreakerRegistry
from rewind.cost.estimator import NER_REQUEST_COST
from rewind.cost.ledger import NER_REQUESTS, BudgetLedger
from rewind.extraction.errors import BudgetExceededError, ExtractionTimeoutError, TransportError
from rewind.extraction.models import ExtractionMethod, ExtractionRequest, Guest
from rewind.extraction.parsing import dedupe_guests, normalize_name

from .base import ExtractionAdapter, context_window

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 5000
MIN_ENTITY_SCORE = 0.8
PERSON_ENTITY_TYPE = "PERSON"
DEFAULT_TIMEOUT_S = 10.0


def build_comprehend_client(region_name: str | None = None, timeout_s: float = DEFAULT_TIMEOUT_S) -> Any:
    """Comprehend client with a hard client-side timeout and no SDK-level retries."""
    config = Config(
        connect_timeout=timeout_s,
        read_timeout=timeout_s,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    return boto3.client("comprehend", region_name=region_name, config=config)


class NERAdapter(ExtractionAdapter):
    """Single-shot entity detection; keeps confident PERSON entities only."""

    method = ExtractionMethod.ner

    def __init__(
        self,
        ledger: BudgetLedger,
        registry: CircuitBreakerRegistry | None = None,
        client: Any = None,
        region_name: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        language_code: str = "en",
    ) -> None:
        super().__init__(registry)
        self._ledger = ledger
        self._client = client or build_comprehend_client(region_name, timeout_s)
        self.language_code = language_code

    def _extract(self, request: ExtractionRequest) -> tuple[list[Guest], float]:
        decision = self._ledger.authorize(NER_REQUEST_COST)
        if not decision.allowed:
            raise BudgetExceededError(f"Budget constraint: {decision.reason}")

        text = request.text
        self._ledger.track_usage(
            self.method,
            {NER_REQUESTS: 1},
            NER_REQUEST_COST,
            request.episode_id,
        )
        try:
            response = self._client.detect_entities(
                Text=text[:MAX_TEXT_CHARS],
                LanguageCode=self.language_code,
            )
        except (ReadTimeoutError, ConnectTimeoutError) as err:
            raise ExtractionTimeoutError(f"NER request timed out: {err}", cost=NER_REQUEST_COST) from err
        except (ClientError, BotoCoreError) as err:
            raise TransportError(f"NER request failed: {err}", cost=NER_REQUEST_COST) from err

        guests: list[Guest] = []
        for entity in response.get("Entities", []):
            if entity.get("Type") != PERSON_ENTITY_TYPE:
                continue
            score = float(entity.get("Score") or 0.0)
            name = normalize_name(entity.get("Text") or "")
            if score <= MIN_ENTITY_SCORE or not name:
                continue
            guests.append(
                Guest(
                    name=name,
                    confidence=min(1.0, score),
                    source=self.method.value,
                    context=context_window(name, text),
                )
            )

        logger.debug("NER found %d person entities for episode %s", len(guests), request.episode_id)
        return dedupe_guests(guests), NER_REQUEST_COST
