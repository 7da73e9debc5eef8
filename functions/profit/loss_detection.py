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
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Query
from google.cloud.firestore_v1.base_query import FieldFilter

from credits.suspension import suspension_update
from shared import audit
from shared.constants import (
    ALERT_COOLDOWN_HOURS,
    CRITICAL_MARGIN_PERCENT,
    FIRESTORE_BATCH_SIZE,
    HIGH_MARGIN_PERCENT,
    LOSS_DETECTION_PERIOD_DAYS,
    LOSS_THRESHOLD_PERCENT,
    LOSS_USERS_DEFAULT_LIMIT,
    UNKNOWN_EMAIL,
)
from shared.errors import InvalidRequestError, NotFoundError
from shared.firebase_constants import (
    ADMIN_ALERTS_COLLECTION,
    LOSS_USERS_COLLECTION,
    USAGE_LOGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.time_utils import as_datetime, utc_now
from shared.types import AlertSeverity, LossAction, LossUser

logger = logging.getLogger(__name__)

VALID_LOSS_ACTIONS = [action.value for action in LossAction]


def summarize_user_logs(logs: Iterable[dict]) -> dict:
    """
    Totals a user's usage logs.

    The plan reported is the plan of the last log seen.
    """
    total_cost = 0.0
    total_revenue = 0.0
    total_profit = 0.0
    generations = 0
    plan = "unknown"
    engines = {}

    for log in logs:
        cost = log.get("real_cost_usd") or 0
        total_cost += cost
        total_revenue += log.get("revenue_estimated_usd") or 0
        total_profit += log.get("profit_usd") or 0
        generations += 1
        plan = log.get("subscription_plan") or plan

        engine = engines.setdefault(log.get("engine_id"), {"cost": 0.0, "count": 0})
        engine["cost"] += cost
        engine["count"] += 1

    most_used = "unknown"
    most_expensive = "unknown"
    if engines:
        most_used = max(engines, key=lambda e: engines[e]["count"])
        most_expensive = max(engines, key=lambda e: engines[e]["cost"])

    return {
        "total_cost": total_cost,
        "total_revenue": total_revenue,
        "total_profit": total_profit,
        "total_generations": generations,
        "subscription_plan": plan,
        "most_used_engine": most_used,
        "most_expensive_engine": most_expensive,
    }


def margin_percent(profit: float, revenue: float) -> float:
    """Margin over revenue. No revenue counts as a total loss."""
    return profit / revenue * 100 if revenue > 0 else -100.0


def analyze_user_profitability(
    db, user_id: str, now: Optional[datetime] = None
) -> Optional[dict]:
    """
    Checks a user's margin over the detection window.

    Returns:
        The loss_users document for the user, or None when the user has no
        usage in the window or is above the loss threshold.
    """
    now = now or utc_now()
    period_start = now - timedelta(days=LOSS_DETECTION_PERIOD_DAYS)

    snapshot = (
        db.collection(USAGE_LOGS_COLLECTION)
        .where(filter=FieldFilter("user_id", "==", user_id))
        .where(filter=FieldFilter("created_at", ">=", period_start))
        .get()
    )
    logs = [doc.to_dict() or {} for doc in snapshot]
    if not logs:
        return None

    summary = summarize_user_logs(logs)
    margin = margin_percent(summary["total_profit"], summary["total_revenue"])
    if margin >= LOSS_THRESHOLD_PERCENT:
        return None

    user_doc = db.collection(USERS_COLLECTION).document(user_id).get()
    email = UNKNOWN_EMAIL
    if user_doc.exists:
        email = (user_doc.to_dict() or {}).get("email") or UNKNOWN_EMAIL

    existing_doc = db.collection(LOSS_USERS_COLLECTION).document(user_id).get()
    existing = (existing_doc.to_dict() or {}) if existing_doc.exists else None
    detected_at = existing.get("detected_at") if existing else None

    loss_user = LossUser(
        user_id=user_id,
        email=email,
        subscription_plan=summary["subscription_plan"],
        total_cost_usd=round(summary["total_cost"], 2),
        total_revenue_usd=round(summary["total_revenue"], 2),
        total_profit_usd=round(summary["total_profit"], 2),
        profit_margin_percent=round(margin, 2),
        total_generations=summary["total_generations"],
        most_used_engine=summary["most_used_engine"],
        most_expensive_engine=summary["most_expensive_engine"],
        detected_at=detected_at,
        last_checked_at=None,
        days_in_loss=(existing.get("days_in_loss") or 0) + 1 if existing else 1,
        notes=(
            f"Loss detected: {margin:.2f}% margin over "
            f"{LOSS_DETECTION_PERIOD_DAYS} days"
        ),
    )

    logger.warning(
        f"[LOSS DETECTED] User {user_id} ({email}): {margin:.2f}% margin, "
        f"${summary['total_profit']:.2f} profit"
    )
    # Timestamps are set after asdict, which would copy the sentinel.
    return {
        **asdict(loss_user),
        "detected_at": detected_at or SERVER_TIMESTAMP,
        "last_checked_at": SERVER_TIMESTAMP,
    }


def detect_loss_users(db, now: Optional[datetime] = None) -> dict:
    """
    Scans every user active in the detection window.

    Loss users are merged into `loss_users`; users who recovered are removed.
    """
    now = now or utc_now()
    period_start = now - timedelta(days=LOSS_DETECTION_PERIOD_DAYS)

    snapshot = (
        db.collection(USAGE_LOGS_COLLECTION)
        .where(filter=FieldFilter("created_at", ">=", period_start))
        .get()
    )
    active_user_ids = []
    for doc in snapshot:
        user_id = (doc.to_dict() or {}).get("user_id")
        if user_id and user_id not in active_user_ids:
            active_user_ids.append(user_id)

    logger.info(f"[LOSS DETECTION] Scanning {len(active_user_ids)} active users")

    loss_users = 0
    profitable_users = 0
    batch = db.batch()
    batch_count = 0

    for user_id in active_user_ids:
        loss_user = analyze_user_profitability(db, user_id, now)
        loss_ref = db.collection(LOSS_USERS_COLLECTION).document(user_id)

        if loss_user:
            batch.set(loss_ref, loss_user, merge=True)
            batch_count += 1
            loss_users += 1
        else:
            profitable_users += 1
            if loss_ref.get().exists:
                logger.info(f"[LOSS RECOVERED] User {user_id} is now profitable")
                batch.delete(loss_ref)
                batch_count += 1

        if batch_count >= FIRESTORE_BATCH_SIZE:
            batch.commit()
            batch = db.batch()
            batch_count = 0

    if batch_count > 0:
        batch.commit()

    logger.info(
        f"[LOSS DETECTION] Complete: {loss_users} loss users, "
        f"{profitable_users} profitable users"
    )
    return {
        "success": True,
        "loss_users": loss_users,
        "profitable_users": profitable_users,
    }


def alert_severity(margin: float) -> AlertSeverity:
    if margin < CRITICAL_MARGIN_PERCENT:
        return AlertSeverity.CRITICAL
    if margin < HIGH_MARGIN_PERCENT:
        return AlertSeverity.HIGH
    return AlertSeverity.MEDIUM


def handle_loss_user_written(
    db,
    user_id: str,
    before: Optional[dict],
    after: Optional[dict],
    doc_ref,
    now: Optional[datetime] = None,
) -> Optional[dict]:
    """
    Raises an admin alert for a new or updated loss user.

    Returns:
        The alert written, or None when the user was removed or an alert was
        already sent within the cooldown.
    """
    if after is None:
        return None

    now = now or utc_now()
    if after.get("alert_sent"):
        sent_at = as_datetime(after.get("alert_sent_at"))
        if sent_at:
            hours_since = (now - sent_at).total_seconds() / 3600
            if hours_since < ALERT_COOLDOWN_HOURS:
                logger.info(
                    f"[ALERT COOLDOWN] Skipping alert for {user_id} "
                    f"(sent {hours_since:.1f}h ago)"
                )
                return None

    margin = after.get("profit_margin_percent") or 0
    severity = alert_severity(margin)
    logger.warning(f"[LOSS ALERT] {severity} - User {user_id}: {margin}% margin")

    alert = {
        "alert_type": "loss_user_detected",
        "severity": severity.value,
        "user_id": user_id,
        "email": after.get("email"),
        "subscription_plan": after.get("subscription_plan"),
        "profit_margin_percent": margin,
        "total_profit_usd": after.get("total_profit_usd"),
        "days_in_loss": after.get("days_in_loss"),
        "is_new": before is None,
        "created_at": SERVER_TIMESTAMP,
        "requires_action": severity == AlertSeverity.CRITICAL,
    }
    db.collection(ADMIN_ALERTS_COLLECTION).add(alert)
    doc_ref.update({"alert_sent": True, "alert_sent_at": SERVER_TIMESTAMP})
    return alert


def list_loss_users(
    db,
    limit: int = LOSS_USERS_DEFAULT_LIMIT,
    sort_by: str = "profit_margin_percent",
) -> dict:
    snapshot = (
        db.collection(LOSS_USERS_COLLECTION)
        .order_by(sort_by, direction=Query.ASCENDING)
        .limit(limit)
        .get()
    )
    loss_users = [{"id": doc.id, **(doc.to_dict() or {})} for doc in snapshot]

    total_loss = sum(user.get("total_profit_usd") or 0 for user in loss_users)
    avg_margin = 0.0
    if loss_users:
        avg_margin = sum(
            user.get("profit_margin_percent") or 0 for user in loss_users
        ) / len(loss_users)
    critical = [
        user
        for user in loss_users
        if (user.get("profit_margin_percent") or 0) < CRITICAL_MARGIN_PERCENT
    ]

    return {
        "success": True,
        "data": loss_users,
        "count": len(loss_users),
        "summary": {
            "total_loss_usd": round(total_loss, 2),
            "avg_margin_percent": round(avg_margin, 2),
            "critical_users": len(critical),
        },
    }


def take_loss_user_action(
    db,
    user_id: str,
    action: str,
    notes: Optional[str],
    admin_uid: str,
) -> dict:
    """
    Records an admin action on a loss user.

    Raises:
        InvalidRequestError: If the user id or action is missing or unknown.
        NotFoundError: If the user is not in `loss_users`.
    """
    if not user_id or not action:
        raise InvalidRequestError("Missing user_id or action")
    if action not in VALID_LOSS_ACTIONS:
        raise InvalidRequestError("Invalid action")

    loss_ref = db.collection(LOSS_USERS_COLLECTION).document(user_id)
    if not loss_ref.get().exists:
        raise NotFoundError("Loss user not found")

    loss_ref.update(
        {
            "action_taken": action,
            "notes": notes or f"Action taken: {action}",
            "last_checked_at": SERVER_TIMESTAMP,
        }
    )

    if action == LossAction.ACCOUNT_SUSPENDED:
        db.collection(USERS_COLLECTION).document(user_id).update(
            suspension_update(True, f"Loss user action: {action}", admin_uid)
        )

    audit.write_profit_audit(
        db,
        action_type="user_flagged",
        entity_type="user",
        entity_id=user_id,
        changed_by=admin_uid,
        after_value={"action": action, "notes": notes},
        reason=f"Loss user action: {action}",
    )
    logger.info(f"[LOSS ACTION] Admin {admin_uid} took action {action} on {user_id}")

    return {
        "success": True,
        "message": f'Action "{action}" applied to user {user_id}',
    }


def detect_loss_plans(
    db, period_days: int = LOSS_DETECTION_PERIOD_DAYS, now: Optional[datetime] = None
) -> List[dict]:
    """Returns plans with a negative margin over the period, worst first."""
    now = now or utc_now()
    period_start = now - timedelta(days=period_days)

    snapshot = (
        db.collection(USAGE_LOGS_COLLECTION)
        .where(filter=FieldFilter("created_at", ">=", period_start))
        .get()
    )

    plans = {}
    for doc in snapshot:
        log = doc.to_dict() or {}
        metrics = plans.setdefault(
            log.get("subscription_plan"),
            {"revenue": 0.0, "profit": 0.0, "users": set()},
        )
        metrics["revenue"] += log.get("revenue_estimated_usd") or 0
        metrics["profit"] += log.get("profit_usd") or 0
        metrics["users"].add(log.get("user_id"))

    loss_plans = [
        {
            "plan_name": plan,
            "profit_margin_percent": margin_percent(
                metrics["profit"], metrics["revenue"]
            ),
            "total_profit_usd": metrics["profit"],
            "user_count": len(metrics["users"]),
        }
        for plan, metrics in plans.items()
    ]
    loss_plans = [plan for plan in loss_plans if plan["profit_margin_percent"] < 0]
    loss_plans.sort(key=lambda plan: plan["profit_margin_percent"])

    for plan in loss_plans:
        logger.warning(
            f"[LOSS PLAN] {plan['plan_name']}: "
            f"{plan['profit_margin_percent']:.2f}% margin, "
            f"${plan['total_profit_usd']:.2f} profit"
        )
    return loss_plans
