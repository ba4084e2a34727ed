from __future__ import annotations

from functools import lru_cache

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from rewind.cost.models import UsageAnalytics
from rewind.cost.store import BudgetStoreError
from rewind.extraction.models import ExtractionResult
from rewind.extraction.service import ExtractionOrchestrator, HealthMetrics, build_orchestrator

app = FastAPI(title="Rewind Guest Extraction", version="0.1.0")


@lru_cache(maxsize=1)
def get_orchestrator() -> ExtractionOrchestrator:
    """Process-wide orchestrator; breaker and history state live as long as the process."""
    return build_orchestrator()


class ExtractRequest(BaseModel):
    """Request body for the /extract endpoint. Text is expected to be sanitized upstream."""

    episode_id: str = Field(min_length=1)
    title: str = ""
    description: str = ""


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "ok",
        "service": "rewind-guests",
        "version": "0.1.0",
    }


@app.post("/extract")
def extract(req: ExtractRequest) -> ExtractionResult:
    """Run guest extraction. A failed extraction is still a 200 with no guests."""
    return get_orchestrator().extract_guests(
        episode_id=req.episode_id,
        title=req.title,
        description=req.description,
    )


@app.get("/health/extraction")
def extraction_health() -> HealthMetrics:
    return get_orchestrator().get_health_metrics()


@app.get("/usage")
def usage(days: int = Query(default=30, ge=1, le=366)) -> UsageAnalytics:
    """Aggregate AI spend over the last *days* days."""
    try:
        return get_orchestrator().ledger.usage_analytics(days=days)
    except BudgetStoreError as exc:
        raise HTTPException(status_code=503, detail=f"Usage store unavailable: {exc}") from exc
