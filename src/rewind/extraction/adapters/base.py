"""Shared contract for guest extraction backends."""

from __future__ import annotations

import logging

from rewind.breaker.registry import CircuitBreakerRegistry
from rewind.extraction.errors import RETRYABLE_ERRORS, ExtractionError
from rewind.extraction.models import (
    AdapterOutcome,
    ErrorKind,
    ExtractionMethod,
    ExtractionRequest,
    Guest,
)

logger = logging.getLogger(__name__)

CONTEXT_WINDOW_CHARS = 50


def context_window(name: str, text: str, window: int = CONTEXT_WINDOW_CHARS) -> str:
    """Return up to *window* characters either side of the first mention of *name*."""
    index = text.lower().find(name.lower())
    if index == -1:
        return ""
    start = max(0, index - window)
    end = min(len(text), index + len(name) + window)
    return text[start:end].strip()


class ExtractionAdapter:
    """
    Base class for a backend.

    Subclasses implement ``_extract`` and raise ``ExtractionError`` subclasses on
    failure. ``attempt`` turns that into a tagged ``AdapterOutcome`` and feeds the
    backend's circuit breaker: successes close it, timeouts and transport errors
    count against it. Budget denials never touch the breaker.
    """

    method: ExtractionMethod

    def __init__(self, registry: CircuitBreakerRegistry | None = None) -> None:
        self._registry = registry

    def _extract(self, request: ExtractionRequest) -> tuple[list[Guest], float]:
        """Return ``(guests, cost_charged)`` or raise ``ExtractionError``."""
        raise NotImplementedError

    def attempt(self, request: ExtractionRequest) -> AdapterOutcome:
        try:
            guests, cost = self._extract(request)
        except ExtractionError as err:
            if isinstance(err, RETRYABLE_ERRORS):
                self._record_failure()
            logger.warning(
                "%s extraction failed for episode %s: %s",
                self.method.value,
                request.episode_id,
                err,
            )
            return AdapterOutcome.failure(self.method, err.kind, str(err), cost=err.cost)
        except Exception as exc:
            self._record_failure()
            logger.exception(
                "%s extraction raised unexpectedly for episode %s",
                self.method.value,
                request.episode_id,
            )
            return AdapterOutcome.failure(
                self.method,
                ErrorKind.TransportError,
                str(exc) or exc.__class__.__name__,
            )

        if self._registry is not None:
            self._registry.record_success(self.method)
        return AdapterOutcome.success(self.method, guests, cost=cost)

    def _record_failure(self) -> None:
        if self._registry is not None:
            self._registry.record_failure(self.method)
