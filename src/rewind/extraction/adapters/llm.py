"""LiteLLM-backed guest extraction with budget pre-flight, timeouts and retries."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Executor, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

try:
    from litellm import completion
except Exception:  # pragma: no cover - optional dependency in tests
    completion = None

from rewind.breaker.registry import CircuitBreakerRegistry
from rewind.config import DEFAULT_LLM_MODEL
from rewind.cost.estimator import estimate_cost
from rewind.cost.ledger import LLM_INPUT_UNITS, LLM_OUTPUT_UNITS, BudgetLedger
from rewind.extraction.errors import (
    RETRYABLE_ERRORS,
    BudgetExceededError,
    ExtractionError,
    ExtractionTimeoutError,
    TransportError,
)
from rewind.extraction.models import ExtractionMethod, ExtractionRequest, Guest
from rewind.extraction.parsing import parse_guest_response

from .base import ExtractionAdapter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 15.0
DEFAULT_MAX_TOKENS = 1000
MAX_ATTEMPTS = 3
BACKOFF_BASE_S = 1.0

# Calls abandoned on timeout keep running here until the provider answers.
_SHARED_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="rewind-llm")


def build_guest_prompt(title: str, description: str) -> str:
    return f"""Extract real people who are guests on this podcast episode.

TITLE: "{title}"
DESCRIPTION: "{description}"

Return only a JSON object:
{{
  "guests": [
    {{
      "name": "Full Name",
      "confidence": 0.95,
      "context": "brief context"
    }}
  ]
}}

Only extract confirmed real people as guests. Ignore fictional characters and the show's hosts."""


def _read_mapping_value(obj: object, key: str) -> object:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _extract_content(response: object) -> str:
    choices = _read_mapping_value(response, "choices")
    if not isinstance(choices, list) or not choices:
        return ""

    message = _read_mapping_value(choices[0], "message")
    content = _read_mapping_value(message, "content")
    return content if isinstance(content, str) else ""


class LLMAdapter(ExtractionAdapter):
    """
    Premium backend.

    Every network attempt, retries included, is authorized against the
    monthly budget first; a denial stops without touching the network.
    Authorized calls race a timer on a worker thread and are retried on
    timeout or transport failure with exponential backoff (1s, 2s, ...).
    Every issued call is charged at its estimate, whether or not it returns.
    """

    method = ExtractionMethod.llm

    def __init__(
        self,
        ledger: BudgetLedger,
        registry: CircuitBreakerRegistry | None = None,
        model_name: str = DEFAULT_LLM_MODEL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_base_s: float = BACKOFF_BASE_S,
        api_base: str | None = None,
        api_key: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        executor: Executor | None = None,
    ) -> None:
        super().__init__(registry)
        self._ledger = ledger
        self.model_name = model_name
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self.backoff_base_s = backoff_base_s
        self.api_base = api_base
        self.api_key = api_key
        self._sleep = sleep
        self._executor = executor or _SHARED_EXECUTOR

    def _extract(self, request: ExtractionRequest) -> tuple[list[Guest], float]:
        estimate = estimate_cost(request.text)
        prompt = build_guest_prompt(request.title, request.description)
        charged = 0.0
        last_error: ExtractionError | None = None

        for attempt_number in range(1, self.max_attempts + 1):
            decision = self._ledger.authorize(estimate.estimated_cost)
            if not decision.allowed:
                if last_error is not None:
                    self._record_failure()
                raise BudgetExceededError(
                    f"Budget constraint: {decision.reason}",
                    cost=charged,
                )

            charged += estimate.estimated_cost
            self._ledger.track_usage(
                self.method,
                {LLM_INPUT_UNITS: estimate.input_units, LLM_OUTPUT_UNITS: estimate.output_units},
                estimate.estimated_cost,
                request.episode_id,
                episodes=1 if attempt_number == 1 else 0,
            )
            try:
                raw_response = self._call_with_timeout(prompt)
            except RETRYABLE_ERRORS as err:
                last_error = err
                logger.warning(
                    "LLM attempt %d/%d failed for episode %s: %s",
                    attempt_number,
                    self.max_attempts,
                    request.episode_id,
                    err,
                )
                if attempt_number < self.max_attempts:
                    self._sleep(self.backoff_base_s * 2 ** (attempt_number - 1))
                continue

            parsed = parse_guest_response(raw_response, source=self.method.value)
            if not parsed.ok:
                logger.warning(
                    "Malformed LLM response for episode %s treated as no guests: %s",
                    request.episode_id,
                    parsed.error,
                )
            return parsed.guests, charged

        error_cls = type(last_error) if last_error is not None else TransportError
        raise error_cls(
            f"LLM extraction failed after {self.max_attempts} attempts: {last_error}",
            cost=charged,
        )

    def _call_with_timeout(self, prompt: str) -> str:
        future = self._executor.submit(self._complete, prompt)
        try:
            return future.result(timeout=self.timeout_s)
        except FutureTimeoutError as err:
            future.cancel()
            raise ExtractionTimeoutError(
                f"LLM request timed out after {self.timeout_s:g}s"
            ) from err

    def _complete(self, prompt: str) -> str:
        if completion is None:
            raise TransportError("LiteLLM is not installed. Add 'litellm' to dependencies.")

        completion_kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "timeout": self.timeout_s,
        }
        if self.api_base:
            completion_kwargs["api_base"] = self.api_base
        if self.api_key:
            completion_kwargs["api_key"] = self.api_key

        try:
            response = completion(**completion_kwargs)
        except Exception as err:
            raise TransportError(f"LLM request failed: {err}") from err

        return _extract_content(response)
