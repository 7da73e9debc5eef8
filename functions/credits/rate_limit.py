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
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from google.cloud.firestore_v1 import DELETE_FIELD, SERVER_TIMESTAMP, Increment
from google.cloud.firestore_v1.base_query import FieldFilter

from analytics import abuse
from shared.constants import (
    DEFAULT_PLAN_RATE_LIMITS,
    IP_RATE_LIMIT_EXCEEDED_MESSAGE,
    IP_RATE_LIMIT_MAX_REQUESTS,
    IP_RATE_LIMIT_WINDOW_MINUTES,
    RATE_LIMIT_DEFAULT_MAX_REQUESTS,
    RATE_LIMIT_EXCEEDED_MESSAGE,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_PURGE_LIMIT,
    RATE_LIMIT_WINDOW_MINUTES,
)
from shared.firebase_constants import (
    DEFAULT_CONFIG_DOC,
    IP_RATE_LIMITS_COLLECTION,
    PLAN_RATE_LIMITS_COLLECTION,
    RATE_LIMITS_COLLECTION,
    SYSTEM_CONFIG_COLLECTION,
    USERS_COLLECTION,
)
from shared.time_utils import as_datetime, utc_now
from shared.types import AbuseSeverity, RateLimitDecision

logger = logging.getLogger(__name__)


def decide_window(
    data: Optional[dict],
    limit: int,
    window: timedelta,
    now: datetime,
    reason: str = RATE_LIMIT_EXCEEDED_MESSAGE,
    block: bool = True,
) -> RateLimitDecision:
    """
    Applies one request to a fixed rate-limit window.

    Args:
        data: The stored window, or None if there is none yet.
        limit: Requests allowed per window.
        window: Window length.
        now: Request time.
        reason: Message returned when the request is refused.
        block: Whether exceeding the limit records `blockedUntil` for the rest
            of the window.

    Returns:
        The decision, with the Firestore write that records it.
    """
    if data is None:
        return RateLimitDecision(
            allowed=True,
            update={"currentCount": 1, "windowStart": now},
            create=True,
        )

    window_start = as_datetime(data.get("windowStart")) or now
    window_end = window_start + window

    if now > window_end:
        update = {"currentCount": 1, "windowStart": now}
        if block:
            update["blockedUntil"] = DELETE_FIELD
        return RateLimitDecision(allowed=True, update=update)

    blocked_until = as_datetime(data.get("blockedUntil"))
    if block and blocked_until and now < blocked_until:
        return RateLimitDecision(allowed=False, reason=reason, reset_at=blocked_until)

    if (data.get("currentCount") or 0) >= limit:
        if not block:
            return RateLimitDecision(allowed=False, reason=reason)
        return RateLimitDecision(
            allowed=False,
            reason=reason,
            reset_at=window_end,
            update={"blockedUntil": window_end},
            newly_blocked=True,
        )

    return RateLimitDecision(allowed=True, update={"currentCount": Increment(1)})


def _apply(doc_ref, decision: RateLimitDecision, create_fields: dict) -> None:
    if decision.update is None:
        return
    if decision.create:
        doc_ref.set({**create_fields, **decision.update})
    else:
        doc_ref.update(decision.update)


def check_rate_limit(
    db,
    user_id: str,
    ai_type: str,
    ip_address: str,
    now: Optional[datetime] = None,
) -> RateLimitDecision:
    """
    Enforces the per-user, per-AI-type hourly window.

    Fails open: a Firestore error allows the request.
    """
    now = now or utc_now()
    limit = RATE_LIMIT_MAX_REQUESTS.get(ai_type, RATE_LIMIT_DEFAULT_MAX_REQUESTS)

    try:
        doc_ref = db.collection(RATE_LIMITS_COLLECTION).document(f"{user_id}_{ai_type}")
        doc = doc_ref.get()
        data = (doc.to_dict() or {}) if doc.exists else None

        decision = decide_window(
            data, limit, timedelta(minutes=RATE_LIMIT_WINDOW_MINUTES), now
        )
        _apply(
            doc_ref,
            decision,
            {
                "userId": user_id,
                "aiType": ai_type,
                "maxRequests": limit,
                "windowMinutes": RATE_LIMIT_WINDOW_MINUTES,
                "ipAddress": ip_address,
            },
        )
    except Exception as e:
        logger.error(f"Rate limit check failed: {e}")
        return RateLimitDecision(allowed=True)

    if decision.newly_blocked:
        abuse.log_abuse(
            db,
            user_id,
            "rate_limit",
            AbuseSeverity.MEDIUM,
            f"Rate limit exceeded for {ai_type}: {data.get('currentCount')}/{limit}",
            {"aiType": ai_type, "ipAddress": ip_address},
        )
    return decision


def check_ip_rate_limit(
    db, ip_address: str, now: Optional[datetime] = None
) -> RateLimitDecision:
    """Enforces the per-IP window. Fails open."""
    now = now or utc_now()
    try:
        doc_ref = db.collection(IP_RATE_LIMITS_COLLECTION).document(ip_address)
        doc = doc_ref.get()
        data = (doc.to_dict() or {}) if doc.exists else None

        decision = decide_window(
            data,
            IP_RATE_LIMIT_MAX_REQUESTS,
            timedelta(minutes=IP_RATE_LIMIT_WINDOW_MINUTES),
            now,
            reason=IP_RATE_LIMIT_EXCEEDED_MESSAGE,
            block=False,
        )
        _apply(
            doc_ref,
            decision,
            {
                "maxRequests": IP_RATE_LIMIT_MAX_REQUESTS,
                "windowMinutes": IP_RATE_LIMIT_WINDOW_MINUTES,
            },
        )
        return decision
    except Exception as e:
        logger.error(f"IP rate limit check failed: {e}")
        return RateLimitDecision(allowed=True)


def decide_plan_limit(
    requests: List[datetime], limits: dict, now: datetime
) -> Tuple[dict, List[datetime]]:
    """
    Applies one request to a sliding hourly and daily request log.

    Returns:
        (result, requests_to_store). `requests_to_store` is None when the
        request is refused and nothing should be written.
    """
    hour_ago = now - timedelta(hours=1)
    day_ago = now - timedelta(days=1)

    recent = sorted(t for t in (as_datetime(r) for r in requests) if t and t > day_ago)
    last_hour = [t for t in recent if t > hour_ago]

    max_per_hour = limits.get("maxPerHour", 0)
    max_per_day = limits.get("maxPerDay", 0)

    if len(last_hour) >= max_per_hour:
        reset_in = last_hour[0] + timedelta(hours=1) - now if last_hour else timedelta()
        return {
            "allowed": False,
            "reason": "Hourly rate limit exceeded",
            "resetIn": math.ceil(reset_in.total_seconds()),
        }, None

    if len(recent) >= max_per_day:
        reset_in = recent[0] + timedelta(days=1) - now if recent else timedelta()
        return {
            "allowed": False,
            "reason": "Daily rate limit exceeded",
            "resetIn": math.ceil(reset_in.total_seconds()),
        }, None

    return {
        "allowed": True,
        "remaining": {
            "hourly": max_per_hour - len(last_hour) - 1,
            "daily": max_per_day - len(recent) - 1,
        },
    }, recent + [now]


def check_plan_rate_limit(db, user_id: str, now: Optional[datetime] = None) -> dict:
    """Enforces the hourly and daily request limits of the user's plan."""
    now = now or utc_now()

    user_doc = db.collection(USERS_COLLECTION).document(user_id).get()
    plan = (user_doc.to_dict() or {}).get("plan") if user_doc.exists else None
    plan = plan or "free"

    config_doc = db.collection(SYSTEM_CONFIG_COLLECTION).document(DEFAULT_CONFIG_DOC).get()
    config = (config_doc.to_dict() or {}) if config_doc.exists else {}
    rate_limits = config.get("rateLimits") or DEFAULT_PLAN_RATE_LIMITS
    limits = (
        rate_limits.get(plan)
        or DEFAULT_PLAN_RATE_LIMITS.get(plan)
        or DEFAULT_PLAN_RATE_LIMITS["free"]
    )

    doc_ref = db.collection(PLAN_RATE_LIMITS_COLLECTION).document(user_id)
    doc = doc_ref.get()
    requests = []
    if doc.exists:
        requests = (doc.to_dict() or {}).get("requests") or []

    result, to_store = decide_plan_limit(requests, limits, now)
    if to_store is not None:
        doc_ref.set(
            {
                "userId": user_id,
                "plan": plan,
                "requests": to_store,
                "lastRequest": SERVER_TIMESTAMP,
            }
        )
    return result


def purge_expired_windows(db, now: Optional[datetime] = None) -> int:
    """Deletes rate-limit windows that started more than an hour ago."""
    now = now or utc_now()
    snapshot = (
        db.collection(RATE_LIMITS_COLLECTION)
        .where(filter=FieldFilter("windowStart", "<", now - timedelta(hours=1)))
        .limit(RATE_LIMIT_PURGE_LIMIT)
        .get()
    )
    docs = list(snapshot)
    if not docs:
        return 0

    batch = db.batch()
    for doc in docs:
        batch.delete(doc.reference)
    batch.commit()
    logger.info(f"Cleaned up {len(docs)} expired rate limits")
    return len(docs)
