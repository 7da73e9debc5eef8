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
import math
import time
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from dacite import from_dict, Config
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from shared import audit
from shared.constants import (
    CREDIT_PRICING_CACHE_TTL_SECONDS,
    DEFAULT_CHAT_COST_PER_TOKEN,
    DEFAULT_CHAT_TOKENS,
    DEFAULT_IMAGE_COST,
    DEFAULT_VIDEO_COST_PER_SECOND,
    DEFAULT_VIDEO_DURATION_SECONDS,
    DEFAULT_VOICE_COST_PER_MINUTE,
    DEFAULT_VOICE_DURATION_SECONDS,
)
from shared.errors import InvalidRequestError, PricingNotFoundError
from shared.firebase_constants import (
    AI_ENGINES_COLLECTION,
    CREDIT_CONFIG_DOC,
    CREDIT_PRICING_COLLECTION,
    PLAN_PRICING_OVERRIDES_COLLECTION,
    SYSTEM_CONFIG_COLLECTION,
)
from shared.json_utils import convert_keys
from shared.types import AIType, CreditCostQuote, PricingSource

logger = logging.getLogger(__name__)


@dataclass
class CreditConfig:
    """Schema for `system_config/credit_config` (stored camelCase)."""

    image_cost: float = DEFAULT_IMAGE_COST
    video_cost_per_second: float = DEFAULT_VIDEO_COST_PER_SECOND
    voice_cost_per_minute: float = DEFAULT_VOICE_COST_PER_MINUTE
    chat_cost_per_token: float = DEFAULT_CHAT_COST_PER_TOKEN


def load_credit_config(db) -> CreditConfig:
    doc = db.collection(SYSTEM_CONFIG_COLLECTION).document(CREDIT_CONFIG_DOC).get()
    if not doc.exists:
        return CreditConfig()
    return from_dict(
        data_class=CreditConfig,
        data=convert_keys(doc.to_dict() or {}, "camel_to_snake"),
        config=Config(check_types=False),
    )


def legacy_credit_cost(
    config: CreditConfig,
    ai_type: str,
    duration: Optional[float] = None,
    tokens: Optional[float] = None,
) -> int:
    """
    Credits charged by the per-type credit configuration, rounded up.

    Raises:
        InvalidRequestError: If the AI type is unknown.
    """
    if ai_type == AIType.IMAGE:
        cost = config.image_cost or DEFAULT_IMAGE_COST
    elif ai_type == AIType.VIDEO:
        per_second = config.video_cost_per_second or DEFAULT_VIDEO_COST_PER_SECOND
        cost = per_second * (duration or DEFAULT_VIDEO_DURATION_SECONDS)
    elif ai_type == AIType.VOICE:
        per_minute = config.voice_cost_per_minute or DEFAULT_VOICE_COST_PER_MINUTE
        cost = per_minute * (duration or DEFAULT_VOICE_DURATION_SECONDS) / 60
    elif ai_type == AIType.CHAT:
        per_token = config.chat_cost_per_token or DEFAULT_CHAT_COST_PER_TOKEN
        cost = per_token * (tokens or DEFAULT_CHAT_TOKENS)
    else:
        raise InvalidRequestError(f"Unsupported AI type: {ai_type}")
    return math.ceil(cost)


@dataclass
class _PricingEntry:
    cost_per_unit: float
    pricing_source: str
    engine_name: str
    cost_unit: str
    cached_at: float


class PricingCache:
    """Per-process cache of resolved credit prices, keyed `plan:ai_type:engine`."""

    def __init__(self, ttl_seconds: int = CREDIT_PRICING_CACHE_TTL_SECONDS, clock=None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, _PricingEntry] = {}

    @staticmethod
    def key(plan: str, ai_type: str, engine_id: str) -> str:
        return f"{plan}:{ai_type}:{engine_id}"

    def get(self, key: str) -> Optional[_PricingEntry]:
        entry = self._entries.get(key)
        if entry and self._clock() - entry.cached_at < self.ttl_seconds:
            return entry
        return None

    def put(
        self, key: str, cost_per_unit: float, pricing_source: str, engine_name: str, cost_unit: str
    ) -> None:
        self._entries[key] = _PricingEntry(
            cost_per_unit=cost_per_unit,
            pricing_source=pricing_source,
            engine_name=engine_name,
            cost_unit=cost_unit,
            cached_at=self._clock(),
        )

    def clear(self) -> None:
        self._entries.clear()


pricing_cache = PricingCache()


def resolve_credit_cost(
    db, plan: str, ai_type: str, engine_id: str, input_size: float
) -> CreditCostQuote:
    """
    Resolves the credit price of an engine for a plan.

    Resolution order: an enabled plan override, then the active engine's
    base cost, then the global per-AI-type default.

    Raises:
        PricingNotFoundError: If no tier yields a non-zero price.
    """
    key = PricingCache.key(plan, ai_type, engine_id)
    cached = pricing_cache.get(key)
    if cached:
        logger.debug(f"[CACHE HIT] Credit pricing for {key}")
        return CreditCostQuote(
            cost_per_unit=cached.cost_per_unit,
            total_cost=math.ceil(cached.cost_per_unit * input_size),
            input_size=input_size,
            pricing_source=cached.pricing_source,
            engine_id=engine_id,
            engine_name=cached.engine_name,
            ai_type=ai_type,
            user_plan=plan,
            cost_unit=cached.cost_unit,
        )

    cost_per_unit = 0
    pricing_source = PricingSource.GLOBAL_DEFAULT
    engine_name = engine_id
    cost_unit = "unit"

    override_doc = db.collection(PLAN_PRICING_OVERRIDES_COLLECTION).document(plan).get()
    if override_doc.exists:
        overrides = override_doc.to_dict() or {}
        engine_override = ((overrides.get("ai_types") or {}).get(ai_type) or {}).get(
            engine_id
        )
        if engine_override and engine_override.get("enabled") is not False:
            cost_per_unit = engine_override.get("cost") or 0
            pricing_source = PricingSource.PLAN_OVERRIDE

    if pricing_source != PricingSource.PLAN_OVERRIDE:
        engine_doc = db.collection(AI_ENGINES_COLLECTION).document(engine_id).get()
        engine = (engine_doc.to_dict() or {}) if engine_doc.exists else {}
        if engine.get("is_active"):
            cost_per_unit = engine.get("base_cost") or 0
            engine_name = engine.get("engine_name") or engine_id
            cost_unit = engine.get("cost_unit") or "unit"
            pricing_source = PricingSource.ENGINE_DEFAULT

    if pricing_source == PricingSource.GLOBAL_DEFAULT or cost_per_unit == 0:
        pricing_doc = db.collection(CREDIT_PRICING_COLLECTION).document(ai_type).get()
        if pricing_doc.exists:
            engine_pricing = ((pricing_doc.to_dict() or {}).get("engines") or {}).get(
                engine_id
            )
            if engine_pricing:
                cost_per_unit = engine_pricing.get("cost") or 0
                pricing_source = PricingSource.GLOBAL_DEFAULT

    if cost_per_unit == 0:
        raise PricingNotFoundError(f"No pricing found for {plan}/{ai_type}/{engine_id}")

    pricing_cache.put(key, cost_per_unit, pricing_source.value, engine_name, cost_unit)
    logger.info(f"Credit cost for {key}: {cost_per_unit} ({pricing_source})")

    return CreditCostQuote(
        cost_per_unit=cost_per_unit,
        total_cost=math.ceil(cost_per_unit * input_size),
        input_size=input_size,
        pricing_source=pricing_source.value,
        engine_id=engine_id,
        engine_name=engine_name,
        ai_type=ai_type,
        user_plan=plan,
        cost_unit=cost_unit,
    )


def list_engine_pricing(
    db, ai_type: Optional[str] = None, include_inactive: bool = False
) -> dict:
    query = db.collection(AI_ENGINES_COLLECTION)
    if ai_type:
        query = query.where(filter=FieldFilter("ai_type", "==", ai_type))
    if not include_inactive:
        query = query.where(filter=FieldFilter("is_active", "==", True))
    engines = [{"id": doc.id, **(doc.to_dict() or {})} for doc in query.get()]

    pricing_config = []
    if ai_type:
        pricing_doc = db.collection(CREDIT_PRICING_COLLECTION).document(ai_type).get()
        if pricing_doc.exists:
            pricing_config = [{"ai_type": ai_type, **(pricing_doc.to_dict() or {})}]
    else:
        pricing_config = [
            {"ai_type": doc.id, **(doc.to_dict() or {})}
            for doc in db.collection(CREDIT_PRICING_COLLECTION).get()
        ]

    return {"success": True, "engines": engines, "pricing_config": pricing_config}


def update_engine_config(
    db, engine_id: str, updates: dict, admin_uid: str, admin_email: str, ip_address: str
) -> dict:
    if not engine_id or not updates:
        raise InvalidRequestError("Missing engine_id or updates")

    db.collection(AI_ENGINES_COLLECTION).document(engine_id).update(
        {**updates, "updated_at": SERVER_TIMESTAMP}
    )
    pricing_cache.clear()
    audit.write_admin_audit(
        db,
        admin_id=admin_uid,
        admin_email=admin_email,
        action="edit_config",
        target_type="engine",
        target_id=engine_id,
        changes=updates,
        details=f"Updated engine configuration: {engine_id}",
        ip_address=ip_address,
    )
    logger.info(f"Engine {engine_id} updated by admin {admin_uid}")
    return {"success": True, "message": f"Engine {engine_id} updated successfully"}


def update_credit_pricing(
    db, ai_type: str, pricing: dict, admin_uid: str, admin_email: str, ip_address: str
) -> dict:
    if not ai_type or not pricing:
        raise InvalidRequestError("Missing ai_type or pricing")

    db.collection(CREDIT_PRICING_COLLECTION).document(ai_type).set(
        {
            **pricing,
            "ai_type": ai_type,
            "updated_at": SERVER_TIMESTAMP,
            "updated_by": admin_email,
        },
        merge=True,
    )
    pricing_cache.clear()
    audit.write_admin_audit(
        db,
        admin_id=admin_uid,
        admin_email=admin_email,
        action="edit_config",
        target_type="pricing",
        target_id=ai_type,
        changes=pricing,
        details=f"Updated credit pricing for {ai_type}",
        ip_address=ip_address,
    )
    logger.info(f"Pricing for {ai_type} updated by admin {admin_uid}")
    return {"success": True, "message": f"Pricing for {ai_type} updated successfully"}


def update_credit_config(
    db, config: dict, admin_uid: str, admin_email: str, ip_address: str
) -> dict:
    """Replaces `system_config/credit_config`. Unknown keys are rejected."""
    if not config:
        raise InvalidRequestError("Missing config")
    allowed = set(convert_keys(asdict(CreditConfig()), "snake_to_camel"))
    unknown = sorted(set(config) - allowed)
    if unknown:
        raise InvalidRequestError(f"Unknown credit config fields: {', '.join(unknown)}")

    db.collection(SYSTEM_CONFIG_COLLECTION).document(CREDIT_CONFIG_DOC).set(
        {**config, "updatedAt": SERVER_TIMESTAMP, "updatedBy": admin_email}
    )
    audit.write_admin_audit(
        db,
        admin_id=admin_uid,
        admin_email=admin_email,
        action="edit_config",
        target_type="config",
        target_id=CREDIT_CONFIG_DOC,
        changes=config,
        details="Updated credit configuration",
        ip_address=ip_address,
    )
    return {"success": True, "message": "Credit configuration updated"}
