"""Pydantic models for the guest extraction pipeline."""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ExtractionMethod(str, Enum):
    """The interchangeable guest extraction backends."""

    llm = "llm"
    ner = "ner"
    heuristic = "heuristic"


# Fallback iteration order, most capable first.
FALLBACK_ORDER: tuple[ExtractionMethod, ...] = (
    ExtractionMethod.llm,
    ExtractionMethod.ner,
    ExtractionMethod.heuristic,
)


class ErrorKind(str, Enum):
    """Failure taxonomy reported back to callers inside ``errors``."""

    BudgetExceeded = "BudgetExceeded"
    BackendUnavailable = "BackendUnavailable"
    Timeout = "Timeout"
    TransportError = "TransportError"
    MalformedResponse = "MalformedResponse"
    AllMethodsExhausted = "AllMethodsExhausted"


def now_ms() -> int:
    return int(time.time() * 1000)


class ExtractionRequest(BaseModel):
    """Immutable, already-sanitized input for one episode."""

    model_config = ConfigDict(frozen=True)

    episode_id: str = Field(description="Correlation key for logs and cost attribution")
    title: str = ""
    description: str = ""

    @property
    def text(self) -> str:
        """The combined text every backend sees."""
        return f"{self.title}. {self.description}"


class Guest(BaseModel):
    """A single guest discovered by one backend."""

    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: str
    context: str | None = None


class ExtractionAttempt(BaseModel):
    """Outcome of one adapter invocation; internal retries collapse into one record."""

    method: ExtractionMethod
    success: bool
    error: str | None = None
    timestamp_ms: int = Field(default_factory=now_ms)
    cost: float | None = None
    duration_ms: int = Field(default=0, ge=0)


class AdapterOutcome(BaseModel):
    """Tagged result of an adapter call: ``ok`` with guests, or an error kind and message."""

    method: ExtractionMethod
    ok: bool
    guests: list[Guest] = Field(default_factory=list)
    cost: float = 0.0
    error_kind: ErrorKind | None = None
    error: str | None = None

    @classmethod
    def success(
        cls,
        method: ExtractionMethod,
        guests: list[Guest],
        cost: float = 0.0,
    ) -> AdapterOutcome:
        return cls(method=method, ok=True, guests=guests, cost=cost)

    @classmethod
    def failure(
        cls,
        method: ExtractionMethod,
        kind: ErrorKind,
        message: str,
        cost: float = 0.0,
    ) -> AdapterOutcome:
        return cls(method=method, ok=False, error_kind=kind, error=message, cost=cost)

    def describe_error(self) -> str:
        kind = self.error_kind.value if self.error_kind else "Error"
        return f"{self.method.value}: {kind}: {self.error or 'unknown failure'}"


class ExtractionResult(BaseModel):
    """The final, always well-formed answer returned to the handler layer."""

    guests: list[Guest] = Field(default_factory=list)
    method: ExtractionMethod | None = Field(
        default=None,
        description="Backend that produced the guests; None when every backend failed",
    )
    success: bool
    fallback_used: bool = False
    errors: list[str] = Field(default_factory=list)
    error_kind: ErrorKind | None = Field(
        default=None,
        description="AllMethodsExhausted when no backend succeeded",
    )
    cost: float = Field(default=0.0, ge=0.0, description="Total spend charged for this request")
    processing_time_ms: int = Field(default=0, ge=0)
