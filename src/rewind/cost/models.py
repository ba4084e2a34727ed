"""Cost and budget models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from rewind.extraction.models import ExtractionMethod


class CostEstimate(BaseModel):
    """Pre-flight estimate for one LLM call. Never persisted."""

    input_units: int = Field(ge=0)
    output_units: int = Field(ge=0)
    estimated_cost: float = Field(ge=0.0)


class CostBudget(BaseModel):
    """Spend cap for one calendar month (``YYYY-MM`` period)."""

    monthly_limit: float = Field(gt=0.0)
    current_spend: float = Field(default=0.0, ge=0.0)
    warning_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    period_start: str = Field(description="ISO-8601 timestamp the period was materialized")

    @property
    def remaining(self) -> float:
        return self.monthly_limit - self.current_spend


class BudgetDecision(BaseModel):
    """Outcome of a pre-flight spend authorization."""

    allowed: bool
    reason: str | None = None
    current_spend: float
    remaining_budget: float


class MethodRecommendation(BaseModel):
    """Which backend to try first, and why."""

    method: ExtractionMethod
    reason: str
    estimated_cost: float = 0.0
    circuit_fallback: bool = Field(
        default=False,
        description="True when an open circuit breaker forced this choice",
    )


class UsageRecord(BaseModel):
    """Aggregated usage for one UTC day."""

    date: str
    units_by_kind: dict[str, int] = Field(default_factory=dict)
    total_cost: float = 0.0
    episodes_processed: int = 0


class UsageAnalytics(BaseModel):
    """Rolled-up view over a window of daily usage records."""

    days: int
    total_cost: float
    episodes_processed: int
    average_cost_per_episode: float
    cost_by_method: dict[str, float] = Field(default_factory=dict)
    daily_usage: list[UsageRecord] = Field(default_factory=list)
