"""Circuit breaker state models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CircuitState(str, Enum):
    """Circuit breaker states."""

    closed = "closed"
    open = "open"
    half_open = "half_open"


class BreakerConfig(BaseModel):
    """Per-backend breaker policy."""

    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(ge=1)
    recovery_timeout_ms: int = Field(ge=0)
    monitoring_period_ms: int = Field(ge=0, description="Window in which consecutive failures accumulate")


class BreakerSnapshot(BaseModel):
    """Point-in-time copy of one breaker, as exposed to dashboards."""

    state: CircuitState
    failure_count: int
    last_failure_time_ms: int
    config: BreakerConfig
