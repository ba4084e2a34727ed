"""Typed adapter failures, converted to tagged outcomes at the adapter boundary."""

from __future__ import annotations

from .models import ErrorKind


class ExtractionError(Exception):
    """Base class for adapter failures. ``cost`` is any spend already charged."""

    kind: ErrorKind = ErrorKind.TransportError

    def __init__(self, message: str, *, cost: float = 0.0) -> None:
        super().__init__(message)
        self.cost = cost


class BudgetExceededError(ExtractionError):
    kind = ErrorKind.BudgetExceeded


class ExtractionTimeoutError(ExtractionError):
    kind = ErrorKind.Timeout


class TransportError(ExtractionError):
    kind = ErrorKind.TransportError


# Failures worth another try inside a single adapter call.
RETRYABLE_ERRORS: tuple[type[ExtractionError], ...] = (ExtractionTimeoutError, TransportError)
