# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import logging
import time
from datetime import datetime
from typing import Iterable, List, Optional

from google.cloud.firestore_v1 import Query
from google.cloud.firestore_v1.base_query import FieldFilter

from shared.constants import PROFIT_AGGREGATES_DEFAULT_LIMIT
from shared.firebase_constants import (
    PROFIT_AGGREGATES_COLLECTION,
    USAGE_LOGS_COLLECTION,
)
from shared.time_utils import previous_day_range, previous_month_range, utc_now
from shared.types import PeriodType

logger = logging.getLogger(__name__)


def period_id(period_start: datetime, period_type: str) -> str:
    """
    Returns the profit_aggregates document id for a period.

    Examples: daily_2026_01_15, monthly_2026_01, yearly_2026.
    """
    if period_type == PeriodType.DAILY:
        return period_start.strftime("daily_%Y_%m_%d")
    if period_type == PeriodType.MONTHLY:
        return period_start.strftime("monthly_%Y_%m")
    if period_type == PeriodType.YEARLY:
        return period_start.strftime("yearly_%Y")
    return period_start.strftime("period_%Y_%m_%d")


def _margin(profit: float, revenue: float) -> float:
    return round(profit / revenue * 100, 2) if revenue > 0 else 0.0


def aggregate_usage_logs(
    logs: Iterable[dict],
    period_start: datetime,
    period_end: datetime,
    period_type: str,
    started_at: Optional[float] = None,
) -> dict:
    """
    Summarizes costed usage logs into a profit aggregate.

    Args:
        logs: usage_logs documents as dicts.
        period_start: Start of the period (inclusive).
        period_end: End of the period (inclusive).
        period_type: One of PeriodType.
        started_at: time.monotonic() value when the calculation began.

    Returns:
        The profit aggregate document.
    """
    started_at = time.monotonic() if started_at is None else started_at

    total_cost = 0.0
    total_revenue = 0.0
    total_profit = 0.0
    cost_by_engine = {}
    revenue_by_plan = {}
    profit_by_plan = {}
    users_by_plan = {}
    unique_users = set()
    loss_users = set()
    log_count = 0
    logs_with_financials = 0

    for log in logs:
        log_count += 1
        cost = log.get("real_cost_usd") or 0
        revenue = log.get("revenue_estimated_usd") or 0
        profit = log.get("profit_usd") or 0
        user_id = log.get("user_id")
        engine_id = log.get("engine_id")
        plan = log.get("subscription_plan")

        if (
            log.get("real_cost_usd") is not None
            and log.get("revenue_estimated_usd") is not None
        ):
            logs_with_financials += 1

        total_cost += cost
        total_revenue += revenue
        total_profit += profit

        unique_users.add(user_id)
        if profit < 0:
            loss_users.add(user_id)

        engine = cost_by_engine.setdefault(
            engine_id, {"cost_usd": 0.0, "usage_count": 0, "avg_cost_per_use": 0.0}
        )
        engine["cost_usd"] += cost
        engine["usage_count"] += 1

        plan_revenue = revenue_by_plan.setdefault(
            plan, {"revenue_usd": 0.0, "user_count": 0, "generation_count": 0}
        )
        plan_revenue["revenue_usd"] += revenue
        plan_revenue["generation_count"] += 1
        users_by_plan.setdefault(plan, set()).add(user_id)

        plan_profit = profit_by_plan.setdefault(
            plan,
            {
                "profit_usd": 0.0,
                "profit_margin_percent": 0.0,
                "cost_usd": 0.0,
                "revenue_usd": 0.0,
            },
        )
        plan_profit["profit_usd"] += profit
        plan_profit["cost_usd"] += cost
        plan_profit["revenue_usd"] += revenue

    for engine in cost_by_engine.values():
        engine["avg_cost_per_use"] = round(
            engine["cost_usd"] / engine["usage_count"], 6
        )

    for plan, plan_revenue in revenue_by_plan.items():
        plan_revenue["user_count"] = len(users_by_plan[plan])

    for plan_profit in profit_by_plan.values():
        plan_profit["profit_margin_percent"] = _margin(
            plan_profit["profit_usd"], plan_profit["revenue_usd"]
        )

    loss_plans = [
        plan
        for plan, plan_profit in profit_by_plan.items()
        if plan_profit["profit_margin_percent"] < 0
    ]

    worst_engine = None
    if cost_by_engine:
        worst_engine = max(cost_by_engine, key=lambda e: cost_by_engine[e]["cost_usd"])

    user_count = len(unique_users)
    avg_cost_per_user = total_cost / user_count if user_count else 0.0
    avg_revenue_per_user = total_revenue / user_count if user_count else 0.0
    completeness = logs_with_financials / log_count * 100 if log_count else 100.0

    return {
        "period_id": period_id(period_start, period_type),
        "period_type": str(period_type),
        "period_start": period_start,
        "period_end": period_end,
        "total_cost_usd": round(total_cost, 2),
        "total_revenue_usd": round(total_revenue, 2),
        "total_profit_usd": round(total_profit, 2),
        "profit_margin_percent": _margin(total_profit, total_revenue),
        "cost_by_engine": cost_by_engine,
        "revenue_by_plan": revenue_by_plan,
        "profit_by_plan": profit_by_plan,
        "loss_users_count": len(loss_users),
        "loss_plans": loss_plans,
        "worst_performing_engine": worst_engine,
        "total_generations": log_count,
        "total_users": user_count,
        "avg_cost_per_user_usd": round(avg_cost_per_user, 2),
        "avg_revenue_per_user_usd": round(avg_revenue_per_user, 2),
        "data_completeness_percent": round(completeness, 2),
        "calculation_duration_ms": int((time.monotonic() - started_at) * 1000),
        "updated_at": utc_now(),
    }


def fetch_usage_logs(db, period_start: datetime, period_end: datetime) -> List[dict]:
    snapshot = (
        db.collection(USAGE_LOGS_COLLECTION)
        .where(filter=FieldFilter("created_at", ">=", period_start))
        .where(filter=FieldFilter("created_at", "<=", period_end))
        .get()
    )
    return [doc.to_dict() or {} for doc in snapshot]


def aggregate_financial_data(
    db, period_start: datetime, period_end: datetime, period_type: str
) -> dict:
    """Aggregates the usage logs of a period. Does not write the result."""
    started_at = time.monotonic()
    logger.info(
        f"[AGGREGATION START] Type: {period_type}, "
        f"Period: {period_start.isoformat()} to {period_end.isoformat()}"
    )
    logs = fetch_usage_logs(db, period_start, period_end)
    logger.info(f"[AGGREGATION] Found {len(logs)} usage logs")
    return aggregate_usage_logs(
        logs, period_start, period_end, period_type, started_at=started_at
    )


def save_aggregate(db, aggregate: dict) -> None:
    db.collection(PROFIT_AGGREGATES_COLLECTION).document(aggregate["period_id"]).set(
        aggregate
    )
    logger.info(
        f"[AGGREGATION SAVED] {aggregate['period_id']}: "
        f"profit ${aggregate['total_profit_usd']} "
        f"({aggregate['profit_margin_percent']}%)"
    )


def run_aggregation(
    db, period_start: datetime, period_end: datetime, period_type: str
) -> dict:
    aggregate = aggregate_financial_data(db, period_start, period_end, period_type)
    save_aggregate(db, aggregate)
    return aggregate


def run_daily_aggregation(db, now: Optional[datetime] = None) -> dict:
    """Aggregates yesterday (UTC)."""
    start, end = previous_day_range(now or utc_now())
    return run_aggregation(db, start, end, PeriodType.DAILY)


def run_monthly_aggregation(db, now: Optional[datetime] = None) -> dict:
    """Aggregates the previous calendar month (UTC)."""
    start, end = previous_month_range(now or utc_now())
    return run_aggregation(db, start, end, PeriodType.MONTHLY)


def list_profit_aggregates(
    db,
    period_type: Optional[str] = None,
    limit: int = PROFIT_AGGREGATES_DEFAULT_LIMIT,
) -> List[dict]:
    query = db.collection(PROFIT_AGGREGATES_COLLECTION)
    if period_type:
        query = query.where(filter=FieldFilter("period_type", "==", period_type))
    query = query.order_by("period_start", direction=Query.DESCENDING).limit(limit)
    return [{"id": doc.id, **(doc.to_dict() or {})} for doc in query.get()]
