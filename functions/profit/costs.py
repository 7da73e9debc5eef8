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
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from dacite import from_dict, Config, DaciteError
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from shared import audit
from shared.constants import ENGINE_COST_CACHE_TTL_SECONDS, PLAN_PRICING_USD
from shared.errors import EngineNotFoundError
from shared.firebase_constants import (
    AI_ENGINE_COSTS_COLLECTION,
    USAGE_LOGS_COLLECTION,
)
from shared.time_utils import start_of_month, utc_now
from shared.types import (
    CostEstimate,
    EngineCost,
    ProfitResult,
    RevenueSource,
    UsageLog,
)

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    cost: EngineCost
    cached_at: float


class EngineCostCache:
    """
    Per-process cache of `ai_engine_costs` documents.

    Only active engines are cached. A function instance serves many
    invocations, so entries expire after `ttl_seconds`.
    """

    def __init__(self, ttl_seconds: int = ENGINE_COST_CACHE_TTL_SECONDS, clock=None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, db, engine_id: str) -> Optional[EngineCost]:
        cached = self._entries.get(engine_id)
        if cached and self._clock() - cached.cached_at < self.ttl_seconds:
            logger.debug(f"[CACHE HIT] Engine cost for {engine_id}")
            return cached.cost

        try:
            doc = db.collection(AI_ENGINE_COSTS_COLLECTION).document(engine_id).get()
        except Exception as e:
            logger.error(f"Failed to fetch engine cost for {engine_id}: {e}")
            return None

        data = doc.to_dict() if doc.exists else None
        if not data or not data.get("is_active"):
            logger.error(f"Engine cost not found or inactive: {engine_id}")
            return None

        try:
            cost = from_dict(
                data_class=EngineCost,
                data={"engine_id": engine_id, **data},
                config=Config(check_types=False),
            )
        except DaciteError as e:
            logger.error(f"Malformed engine cost for {engine_id}: {e}")
            return None
        self._entries[engine_id] = _CacheEntry(cost=cost, cached_at=self._clock())
        logger.info(
            f"[CACHE MISS] Fetched engine cost for {engine_id}: ${cost.cost_per_unit}"
        )
        return cost

    def evict(self, engine_id: str) -> None:
        self._entries.pop(engine_id, None)

    def clear(self) -> None:
        self._entries.clear()


engine_cost_cache = EngineCostCache()


def get_plan_price(plan: Optional[str]) -> float:
    """Returns the monthly USD price of a plan. Unknown plans are free."""
    return PLAN_PRICING_USD.get((plan or "").lower(), 0.0)


def calculate_usage_cost(
    db, engine_id: str, usage_units: float
) -> Tuple[float, Optional[EngineCost]]:
    """
    Computes the real vendor cost of a generation.

    Returns:
        (cost_usd, engine_cost). The cost is 0.0 when the engine is unknown
        or inactive.
    """
    engine_cost = engine_cost_cache.get(db, engine_id)
    if not engine_cost:
        return 0.0, None
    return round(engine_cost.cost_per_unit * usage_units, 6), engine_cost


def _monthly_usage_units(db, user_id: str, now: datetime) -> float:
    snapshot = (
        db.collection(USAGE_LOGS_COLLECTION)
        .where(filter=FieldFilter("user_id", "==", user_id))
        .where(filter=FieldFilter("created_at", ">=", start_of_month(now)))
        .get()
    )
    return sum((doc.to_dict() or {}).get("usage_units") or 0 for doc in snapshot)


def calculate_usage_revenue(
    db,
    user_id: str,
    subscription_plan: str,
    usage_units: float,
    now: Optional[datetime] = None,
) -> Tuple[float, float]:
    """
    Allocates a share of the user's monthly subscription price to one generation.

    The share is proportional to the generation's units over the user's units
    for the current calendar month, including this generation.

    Returns:
        (revenue_usd, allocation_percent)
    """
    plan_price = get_plan_price(subscription_plan)
    if plan_price == 0:
        return 0.0, 0.0

    monthly_units = _monthly_usage_units(db, user_id, now or utc_now())
    safe_units = max(monthly_units, usage_units)
    if safe_units <= 0:
        return 0.0, 0.0

    revenue = round(plan_price / safe_units * usage_units, 6)
    allocation_percent = round(usage_units / safe_units * 100, 2)
    return revenue, allocation_percent


def calculate_profit(
    db,
    engine_id: str,
    usage_units: float,
    user_id: str,
    subscription_plan: str,
    now: Optional[datetime] = None,
) -> ProfitResult:
    cost, engine_cost = calculate_usage_cost(db, engine_id, usage_units)
    revenue, allocation_percent = calculate_usage_revenue(
        db, user_id, subscription_plan, usage_units, now
    )
    profit = round(revenue - cost, 6)
    margin = round(profit / revenue * 100, 2) if revenue > 0 else 0.0

    if get_plan_price(subscription_plan) == 0:
        pricing_source = RevenueSource.FREE_PLAN
    else:
        pricing_source = RevenueSource.PLAN_ALLOCATION

    return ProfitResult(
        real_cost_usd=cost,
        revenue_estimated_usd=revenue,
        profit_usd=profit,
        profit_margin_percent=margin,
        pricing_source=pricing_source.value,
        engine_cost_per_unit=engine_cost.cost_per_unit if engine_cost else 0.0,
        revenue_allocation_percent=allocation_percent,
    )


def build_usage_log(
    generation_id: str, generation: dict, profit: ProfitResult
) -> UsageLog:
    """Builds the costed usage log for a generation document."""
    return UsageLog(
        user_id=generation.get("user_id"),
        subscription_plan=generation.get("subscription_plan") or "free",
        ai_type=generation.get("ai_type") or "image",
        engine_id=generation_engine_id(generation),
        usage_units=generation_usage_units(generation),
        credits_used=generation.get("credits_used") or 0,
        created_at=SERVER_TIMESTAMP,
        real_cost_usd=profit.real_cost_usd,
        revenue_estimated_usd=profit.revenue_estimated_usd,
        profit_usd=profit.profit_usd,
        profit_margin_percent=profit.profit_margin_percent,
        pricing_source=profit.pricing_source,
        request_id=generation_id,
        device_type=generation.get("device_type") or "web",
        country_code=generation.get("country_code"),
        generation_time_ms=generation.get("generation_time_ms"),
    )


def generation_engine_id(generation: dict) -> str:
    return generation.get("engine_id") or generation.get("model") or "unknown"


def generation_usage_units(generation: dict) -> float:
    return generation.get("usage_units") or 1


def estimate_cost(db, engine_id: str, usage_units: float) -> CostEstimate:
    """
    Estimates the vendor cost of a generation before it runs.

    Raises:
        EngineNotFoundError: If the engine is unknown or inactive.
    """
    engine_cost = engine_cost_cache.get(db, engine_id)
    if not engine_cost:
        raise EngineNotFoundError(f"Engine {engine_id} not found")

    return CostEstimate(
        engine_id=engine_id,
        usage_units=usage_units,
        cost_per_unit=engine_cost.cost_per_unit,
        estimated_cost_usd=round(engine_cost.cost_per_unit * usage_units, 4),
        unit_type=engine_cost.unit_type,
    )


def update_engine_cost(
    db,
    engine_id: str,
    cost_per_unit: float,
    changed_by: str,
    reason: Optional[str] = None,
) -> None:
    """Sets an engine's vendor cost, evicts it from the cache and audits the change."""
    engine_ref = db.collection(AI_ENGINE_COSTS_COLLECTION).document(engine_id)
    engine_doc = engine_ref.get()
    old_value = engine_doc.to_dict() if engine_doc.exists else None

    engine_ref.set(
        {
            "cost_per_unit": cost_per_unit,
            "updated_at": SERVER_TIMESTAMP,
            "updated_by": changed_by,
        },
        merge=True,
    )
    engine_cost_cache.evict(engine_id)

    audit.write_profit_audit(
        db,
        action_type="cost_updated",
        entity_type="engine",
        entity_id=engine_id,
        changed_by=changed_by,
        before_value=(old_value or {}).get("cost_per_unit"),
        after_value=cost_per_unit,
        reason=reason,
    )
    logger.info(f"Engine cost updated: {engine_id} -> ${cost_per_unit}")
