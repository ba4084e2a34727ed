"""Cost estimation and monthly budget governance."""

from .estimator import NER_REQUEST_COST, estimate_cost
from .ledger import BudgetLedger
from .models import BudgetDecision, CostBudget, CostEstimate, MethodRecommendation, UsageAnalytics
from .store import (
    BudgetStoreError,
    DynamoBudgetStore,
    DynamoUsageStore,
    InMemoryBudgetStore,
    InMemoryUsageStore,
)

__all__ = [
    "NER_REQUEST_COST",
    "BudgetDecision",
    "BudgetLedger",
    "BudgetStoreError",
    "CostBudget",
    "CostEstimate",
    "DynamoBudgetStore",
    "DynamoUsageStore",
    "InMemoryBudgetStore",
    "InMemoryUsageStore",
    "MethodRecommendation",
    "UsageAnalytics",
    "estimate_cost",
]
