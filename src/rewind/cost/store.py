"""Budget and usage stores: in-memory for a single process, DynamoDB for shared spend."""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Any, Protocol

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from .models import CostBudget, UsageRecord

logger = logging.getLogger(__name__)

_USAGE_RESERVED_FIELDS = {"date", "totalCost", "episodesProcessed"}


class BudgetStoreError(RuntimeError):
    """Raised when the durable budget or usage store cannot be reached."""


class BudgetStore(Protocol):
    """Durable spend counter keyed by ``YYYY-MM`` period."""

    def read_budget(self, period: str) -> CostBudget | None: ...

    def increment_spend(self, period: str, amount: float) -> None: ...

    def initialize_budget(self, period: str, budget: CostBudget) -> None: ...


class UsageStore(Protocol):
    """Daily usage telemetry keyed by ``YYYY-MM-DD``."""

    def record_daily_usage(
        self,
        date: str,
        units_by_kind: dict[str, int],
        cost: float,
        episodes_processed: int,
    ) -> None: ...

    def read_daily_usage(self, start_date: str, end_date: str) -> list[UsageRecord]: ...


class InMemoryBudgetStore:
    """Process-local budget store. Spend is not shared across instances."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._budgets: dict[str, CostBudget] = {}

    def read_budget(self, period: str) -> CostBudget | None:
        with self._lock:
            budget = self._budgets.get(period)
            return budget.model_copy() if budget is not None else None

    def increment_spend(self, period: str, amount: float) -> None:
        with self._lock:
            budget = self._budgets.get(period)
            if budget is None:
                raise BudgetStoreError(f"No budget initialized for period {period}")
            self._budgets[period] = budget.model_copy(
                update={"current_spend": budget.current_spend + amount}
            )

    def initialize_budget(self, period: str, budget: CostBudget) -> None:
        with self._lock:
            # First writer wins, matching the conditional put of the durable store.
            self._budgets.setdefault(period, budget.model_copy())


class InMemoryUsageStore:
    """Process-local daily usage aggregation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._days: dict[str, UsageRecord] = {}

    def record_daily_usage(
        self,
        date: str,
        units_by_kind: dict[str, int],
        cost: float,
        episodes_processed: int,
    ) -> None:
        with self._lock:
            record = self._days.get(date) or UsageRecord(date=date)
            units = dict(record.units_by_kind)
            for kind, count in units_by_kind.items():
                units[kind] = units.get(kind, 0) + count
            self._days[date] = UsageRecord(
                date=date,
                units_by_kind=units,
                total_cost=record.total_cost + cost,
                episodes_processed=record.episodes_processed + episodes_processed,
            )

    def read_daily_usage(self, start_date: str, end_date: str) -> list[UsageRecord]:
        with self._lock:
            return [
                record.model_copy()
                for date, record in sorted(self._days.items())
                if start_date <= date <= end_date
            ]


def _to_decimal(value: float) -> Decimal:
    # DynamoDB rejects binary floats.
    return Decimal(str(value))


class DynamoBudgetStore:
    """Budget rows in a DynamoDB table with ``month`` as the hash key."""

    def __init__(self, table_name: str, region_name: str | None = None, table: Any = None) -> None:
        self.table_name = table_name
        self._table = table or boto3.resource("dynamodb", region_name=region_name).Table(table_name)

    def read_budget(self, period: str) -> CostBudget | None:
        try:
            response = self._table.get_item(Key={"month": period}, ConsistentRead=True)
        except (ClientError, BotoCoreError) as err:
            raise BudgetStoreError(f"Failed to read budget for {period}: {err}") from err

        item = response.get("Item")
        if not item:
            return None
        try:
            return CostBudget(
                monthly_limit=float(item["monthlyLimit"]),
                current_spend=float(item.get("currentSpend", 0)),
                warning_threshold=float(item.get("warningThreshold", 0.8)),
                period_start=str(item.get("periodStart", "")),
            )
        except (KeyError, TypeError, ValueError) as err:
            raise BudgetStoreError(f"Malformed budget row for {period}: {err}") from err

    def increment_spend(self, period: str, amount: float) -> None:
        try:
            self._table.update_item(
                Key={"month": period},
                UpdateExpression="ADD currentSpend :cost",
                ExpressionAttributeValues={":cost": _to_decimal(amount)},
            )
        except (ClientError, BotoCoreError) as err:
            raise BudgetStoreError(f"Failed to increment spend for {period}: {err}") from err

    def initialize_budget(self, period: str, budget: CostBudget) -> None:
        try:
            self._table.put_item(
                Item={
                    "month": period,
                    "monthlyLimit": _to_decimal(budget.monthly_limit),
                    "currentSpend": _to_decimal(budget.current_spend),
                    "warningThreshold": _to_decimal(budget.warning_threshold),
                    "periodStart": budget.period_start,
                },
                ConditionExpression="attribute_not_exists(#month)",
                ExpressionAttributeNames={"#month": "month"},
            )
        except ClientError as err:
            if err.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                logger.info("Budget for %s already initialized by another instance", period)
                return
            raise BudgetStoreError(f"Failed to initialize budget for {period}: {err}") from err
        except BotoCoreError as err:
            raise BudgetStoreError(f"Failed to initialize budget for {period}: {err}") from err


class DynamoUsageStore:
    """Daily usage rows in a DynamoDB table with ``date`` as the hash key."""

    def __init__(self, table_name: str, region_name: str | None = None, table: Any = None) -> None:
        self.table_name = table_name
        self._table = table or boto3.resource("dynamodb", region_name=region_name).Table(table_name)

    def record_daily_usage(
        self,
        date: str,
        units_by_kind: dict[str, int],
        cost: float,
        episodes_processed: int,
    ) -> None:
        names = {"#tc": "totalCost", "#ep": "episodesProcessed"}
        values: dict[str, Any] = {":tc": _to_decimal(cost), ":ep": episodes_processed}
        clauses = ["#tc :tc", "#ep :ep"]
        for index, (kind, count) in enumerate(sorted(units_by_kind.items())):
            names[f"#u{index}"] = kind
            values[f":u{index}"] = count
            clauses.append(f"#u{index} :u{index}")

        try:
            self._table.update_item(
                Key={"date": date},
                UpdateExpression="ADD " + ", ".join(clauses),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except (ClientError, BotoCoreError) as err:
            raise BudgetStoreError(f"Failed to record usage for {date}: {err}") from err

    def read_daily_usage(self, start_date: str, end_date: str) -> list[UsageRecord]:
        scan_kwargs: dict[str, Any] = {
            "FilterExpression": Attr("date").between(start_date, end_date),
        }
        items: list[dict[str, Any]] = []
        try:
            while True:
                response = self._table.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as err:
            raise BudgetStoreError(f"Failed to read usage between {start_date} and {end_date}: {err}") from err

        records = [
            UsageRecord(
                date=str(item["date"]),
                units_by_kind={
                    key: int(value)
                    for key, value in item.items()
                    if key not in _USAGE_RESERVED_FIELDS
                },
                total_cost=float(item.get("totalCost", 0)),
                episodes_processed=int(item.get("episodesProcessed", 0)),
            )
            for item in items
        ]
        return sorted(records, key=lambda record: record.date)
