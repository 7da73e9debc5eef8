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
from datetime import datetime
from typing import List, Optional, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Increment

from analytics import abuse
from credits import moderation, pricing, rate_limit
from credits.suspension import is_suspended, suspension_update
from shared import audit
from shared.constants import (
    CREDIT_HISTORY_CAP,
    DEFAULT_SIGNUP_CREDITS,
    GENERATION_LOG_PROMPT_MAX_LENGTH,
    LOGGED_PROMPT_MAX_LENGTH,
)
from shared.errors import (
    AccountSuspendedError,
    EngineNotFoundError,
    EngineUnavailableError,
    InsufficientCreditsError,
    InvalidRequestError,
    PromptRejectedError,
    RateLimitedError,
    UserNotFoundError,
)
from shared.firebase_constants import (
    AI_ACTIVITY_COLLECTION,
    AI_ENGINES_COLLECTION,
    CREDIT_LOGS_COLLECTION,
    GENERATION_LOGS_COLLECTION,
    GENERATIONS_COLLECTION,
    USERS_COLLECTION,
)
from shared.time_utils import as_datetime, utc_now
from shared.types import AbuseSeverity, ActivityStatus, DeductionResult

logger = logging.getLogger(__name__)


def apply_deduction(user: dict, cost: float) -> Tuple[float, float]:
    """
    Returns (balance_before, balance_after) for charging `cost` credits.

    Raises:
        InsufficientCreditsError: If the balance is below the cost.
    """
    balance = user.get("credits") or 0
    if balance < cost:
        raise InsufficientCreditsError(required=cost, available=balance)
    return balance, balance - cost


def append_credit_history(
    history: Optional[List[dict]], entry: dict, cap: int = CREDIT_HISTORY_CAP
) -> List[dict]:
    """Appends to a user's credit history, keeping the most recent `cap` entries."""
    updated = list(history or []) + [entry]
    return updated[-cap:]


def _truncate(prompt: Optional[str], limit: int = LOGGED_PROMPT_MAX_LENGTH):
    return prompt[:limit] if prompt else None


def deduct_credits(
    db,
    user_id: str,
    cost: float,
    reason: str,
    ai_type: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> DeductionResult:
    """
    Charges credits in a transaction and records the charge in `credit_logs`.

    Raises:
        UserNotFoundError, AccountSuspendedError, InsufficientCreditsError
    """
    transaction = db.transaction()
    user_ref = db.collection(USERS_COLLECTION).document(user_id)
    log_ref = db.collection(CREDIT_LOGS_COLLECTION).document()

    @firestore.transactional
    def _deduct_transaction(transaction, user_ref):
        user_doc = user_ref.get(transaction=transaction)
        if not user_doc.exists:
            raise UserNotFoundError()
        user = user_doc.to_dict() or {}
        if is_suspended(user):
            raise AccountSuspendedError()

        before, after = apply_deduction(user, cost)
        transaction.update(
            user_ref, {"credits": after, "lastCreditUpdate": SERVER_TIMESTAMP}
        )
        transaction.set(
            log_ref,
            {
                "userId": user_id,
                "userEmail": user.get("email") or "unknown",
                "type": "deduction",
                "amount": cost,
                "balanceBefore": before,
                "balanceAfter": after,
                "reason": reason,
                "aiType": ai_type,
                "metadata": metadata or {},
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        return DeductionResult(
            balance_before=before,
            balance_after=after,
            amount=cost,
            user_email=user.get("email") or "unknown",
            user_name=user.get("name"),
            country=user.get("country"),
        )

    result = _deduct_transaction(transaction, user_ref)
    logger.info(
        f"Credits deducted: {cost} from user {user_id}. New balance: {result.balance_after}"
    )
    return result


def grant_credits(
    db,
    user_id: str,
    amount: float,
    reason: Optional[str],
    admin_uid: str,
    admin_email: str,
    kind: str = "grant",
    audit_action: str = "grant_credits",
    ip_address: str = "cloud-function",
) -> dict:
    """
    Adds credits to a user in a transaction.

    Both successful and failed grants are written to the admin audit log.

    Raises:
        InvalidRequestError: If the amount is not positive.
        UserNotFoundError: If the user does not exist.
    """
    if not user_id or not amount or amount <= 0:
        raise InvalidRequestError("Amount must be positive")

    transaction = db.transaction()
    user_ref = db.collection(USERS_COLLECTION).document(user_id)
    log_ref = db.collection(CREDIT_LOGS_COLLECTION).document()

    @firestore.transactional
    def _grant_transaction(transaction, user_ref):
        user_doc = user_ref.get(transaction=transaction)
        if not user_doc.exists:
            raise UserNotFoundError()
        user = user_doc.to_dict() or {}

        before = user.get("credits") or 0
        after = before + amount
        history = append_credit_history(
            user.get("creditHistory"),
            {
                "timestamp": utc_now(),
                "amount": amount,
                "reason": reason or "manual_grant",
                "adminId": admin_uid,
            },
        )
        transaction.update(
            user_ref,
            {
                "credits": after,
                "totalCreditsGranted": Increment(amount),
                "creditHistory": history,
                "lastCreditUpdate": SERVER_TIMESTAMP,
            },
        )
        transaction.set(
            log_ref,
            {
                "userId": user_id,
                "userEmail": user.get("email") or "unknown",
                "type": kind or "grant",
                "amount": amount,
                "balanceBefore": before,
                "balanceAfter": after,
                "reason": reason or "Admin credit grant",
                "metadata": {"adminId": admin_uid, "adminEmail": admin_email},
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        return before, after, user.get("email")

    try:
        before, after, email = _grant_transaction(transaction, user_ref)
    except Exception as e:
        audit.write_admin_audit(
            db,
            admin_id=admin_uid,
            admin_email=admin_email,
            action=audit_action,
            target_type="user",
            target_id=user_id,
            changes={"amount": amount},
            reason=reason,
            ip_address=ip_address,
            success=False,
            error_message=str(e),
        )
        raise

    audit.write_admin_audit(
        db,
        admin_id=admin_uid,
        admin_email=admin_email,
        action=audit_action,
        target_type="user",
        target_id=user_id,
        changes={
            "before": {"credits": before},
            "after": {"credits": after},
            "amount": amount,
        },
        details=f"Granted {amount} credits to {email}",
        reason=reason,
        ip_address=ip_address,
    )
    return {
        "success": True,
        "newBalance": after,
        "message": f"Successfully granted {amount} credits",
    }


def create_activity(
    db,
    user_id: str,
    user: dict,
    ai_type: str,
    service: str,
    prompt: Optional[str],
    credits_used: float,
    ip_address: str,
    user_agent: Optional[str],
    extra: Optional[dict] = None,
) -> str:
    """Creates a pending `ai_activity` record and returns its id."""
    prompt_preview = "N/A"
    if prompt:
        prompt_preview = prompt[:LOGGED_PROMPT_MAX_LENGTH]
        if len(prompt) > LOGGED_PROMPT_MAX_LENGTH:
            prompt_preview += "..."

    _, activity_ref = db.collection(AI_ACTIVITY_COLLECTION).add(
        {
            "userId": user_id,
            "userEmail": user.get("email") or "unknown",
            "userName": user.get("name") or "Unknown User",
            "subscriptionPlan": user.get("plan") or "free",
            "aiType": ai_type,
            "service": service,
            "prompt": prompt_preview,
            "promptHash": moderation.hash_prompt(prompt) if prompt else None,
            "creditsUsed": credits_used,
            "status": ActivityStatus.PENDING.value,
            "progress": 0,
            "timestamp": utc_now(),
            "ipAddress": ip_address,
            "country": user.get("country"),
            "deviceInfo": user_agent,
            **(extra or {}),
        }
    )
    return activity_ref.id


def update_activity_status(
    db,
    activity_id: str,
    status: Optional[str] = None,
    progress: Optional[float] = None,
    result_url: Optional[str] = None,
    error_message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Updates an activity. A completed activity is also recorded in `generations`,
    which produces its costed usage log.

    Raises:
        InvalidRequestError: If the activity id is missing.
    """
    if not activity_id:
        raise InvalidRequestError("Activity ID is required")

    now = now or utc_now()
    activity_ref = db.collection(AI_ACTIVITY_COLLECTION).document(activity_id)

    update = {}
    if status:
        update["status"] = status
    if progress is not None:
        update["progress"] = progress
    if result_url:
        update["resultUrl"] = result_url
    if error_message:
        update["errorMessage"] = error_message

    finished = status in (ActivityStatus.COMPLETED, ActivityStatus.FAILED)
    activity = None
    if finished:
        update["completedAt"] = now
        activity_doc = activity_ref.get()
        if activity_doc.exists:
            activity = activity_doc.to_dict() or {}
            started = as_datetime(activity.get("timestamp"))
            if started:
                update["processingTime"] = int((now - started).total_seconds() * 1000)

    activity_ref.update(update)

    if status == ActivityStatus.COMPLETED and activity is not None:
        db.collection(GENERATIONS_COLLECTION).document(activity_id).set(
            {
                "user_id": activity.get("userId"),
                "subscription_plan": activity.get("subscriptionPlan") or "free",
                "ai_type": activity.get("aiType"),
                "engine_id": activity.get("engine_id") or activity.get("service"),
                "usage_units": activity.get("input_size") or 1,
                "credits_used": activity.get("creditsUsed") or 0,
                "output_url": result_url,
                "generation_time_ms": update.get("processingTime"),
                "activity_id": activity_id,
                "created_at": SERVER_TIMESTAMP,
            }
        )

    return {"success": True, "message": "Activity status updated"}


def _load_user(db, user_id: str) -> dict:
    user_doc = db.collection(USERS_COLLECTION).document(user_id).get()
    if not user_doc.exists:
        raise UserNotFoundError()
    return user_doc.to_dict() or {}


def _reject_prompt(db, user_id, prompt, metadata) -> None:
    if not prompt:
        return
    result = moderation.moderate_prompt(prompt)
    if result.allowed:
        return
    abuse.log_abuse(
        db,
        user_id,
        "inappropriate_prompt",
        AbuseSeverity.HIGH,
        f"Inappropriate prompt detected: {', '.join(result.flagged)}",
        {**metadata, "flagged": result.flagged, "promptHash": moderation.hash_prompt(prompt)},
        action_taken="warning",
    )
    raise PromptRejectedError(result.reason, result.flagged)


def validate_and_deduct_credits(
    db,
    user_id: str,
    ai_type: str,
    service: str,
    prompt: Optional[str] = None,
    duration: Optional[float] = None,
    tokens: Optional[float] = None,
    ip_address: str = "unknown",
    user_agent: Optional[str] = None,
) -> dict:
    """
    Charges a generation using the per-type credit configuration.

    Checks run in order: account, prompt moderation, user and IP rate limits,
    then the transactional deduction.
    """
    if not ai_type or not service:
        raise InvalidRequestError("Missing required parameters")

    user = _load_user(db, user_id)
    if is_suspended(user):
        raise AccountSuspendedError()

    _reject_prompt(db, user_id, prompt, {"ipAddress": ip_address})

    decision = rate_limit.check_rate_limit(db, user_id, ai_type, ip_address)
    if not decision.allowed:
        raise RateLimitedError(decision.reason or "Rate limit exceeded")
    ip_decision = rate_limit.check_ip_rate_limit(db, ip_address)
    if not ip_decision.allowed:
        raise RateLimitedError(ip_decision.reason or "Too many requests")

    credit_cost = pricing.legacy_credit_cost(
        pricing.load_credit_config(db), ai_type, duration, tokens
    )
    result = deduct_credits(
        db,
        user_id,
        credit_cost,
        reason=f"{ai_type} generation via {service}",
        ai_type=ai_type,
        metadata={
            "service": service,
            "prompt": _truncate(prompt),
            "duration": duration,
            "tokens": tokens,
            "ipAddress": ip_address,
        },
    )
    activity_id = create_activity(
        db, user_id, user, ai_type, service, prompt, credit_cost, ip_address, user_agent
    )
    return {
        "success": True,
        "creditCost": credit_cost,
        "newBalance": result.balance_after,
        "activityId": activity_id,
        "message": "Credits validated and deducted successfully",
    }


def validate_and_deduct_engine_credits(
    db,
    user_id: str,
    ai_type: str,
    engine_id: str,
    input_size: float,
    prompt: Optional[str] = None,
    metadata: Optional[dict] = None,
    ip_address: str = "unknown",
    user_agent: Optional[str] = None,
) -> dict:
    """
    Charges a generation using the engine's credit price per unit.

    Raises:
        EngineNotFoundError, EngineUnavailableError, InvalidRequestError,
        RateLimitedError, PromptRejectedError, UserNotFoundError,
        AccountSuspendedError, InsufficientCreditsError
    """
    if not ai_type or not engine_id or input_size is None:
        raise InvalidRequestError("Missing required fields")

    engine_doc = db.collection(AI_ENGINES_COLLECTION).document(engine_id).get()
    if not engine_doc.exists:
        raise EngineNotFoundError(f"Engine {engine_id} not found")
    engine = engine_doc.to_dict() or {}
    if not engine.get("is_active"):
        raise EngineUnavailableError(f"Engine {engine_id} is currently disabled")
    if engine.get("ai_type") != ai_type:
        raise InvalidRequestError(
            f"Engine {engine_id} is not compatible with AI type {ai_type}"
        )

    base_cost = engine.get("base_cost") or 1
    total_cost = math.ceil(base_cost * input_size)
    if total_cost <= 0:
        raise InvalidRequestError("Calculated cost must be greater than 0")

    decision = rate_limit.check_rate_limit(db, user_id, ai_type, ip_address)
    if not decision.allowed:
        raise RateLimitedError(decision.reason or "Rate limit exceeded")

    _reject_prompt(
        db, user_id, prompt, {"ai_type": ai_type, "engine_id": engine_id}
    )

    engine_name = engine.get("engine_name") or engine_id
    user = _load_user(db, user_id)
    result = deduct_credits(
        db,
        user_id,
        total_cost,
        reason=f"{ai_type} generation using {engine_name}",
        ai_type=ai_type,
        metadata={
            **(metadata or {}),
            "engine_id": engine_id,
            "engine_name": engine.get("engine_name"),
            "input_size": input_size,
            "cost_per_unit": base_cost,
            "prompt": _truncate(prompt),
            "ipAddress": ip_address,
        },
    )
    activity_id = create_activity(
        db,
        user_id,
        user,
        ai_type,
        engine_name,
        prompt,
        total_cost,
        ip_address,
        user_agent,
        extra={
            "engine_id": engine_id,
            "engine_name": engine.get("engine_name"),
            "input_size": input_size,
            "cost_unit": engine.get("cost_unit"),
        },
    )
    return {
        "success": True,
        "activityId": activity_id,
        "cost": total_cost,
        "newBalance": result.balance_after,
        "message": f"Successfully deducted {total_cost} credits for {engine_name}",
    }


def initialize_new_user(
    user: dict, rules: Optional[dict], now: Optional[datetime] = None
) -> dict:
    """Returns the default fields missing from a newly created user."""
    now = now or utc_now()
    signup_credits = (rules or {}).get("freeSignupCredits") or DEFAULT_SIGNUP_CREDITS

    updates = {}
    if user.get("credits") is None:
        updates["credits"] = signup_credits
        updates["totalCreditsGranted"] = signup_credits
        updates["creditHistory"] = [
            {"timestamp": now, "amount": signup_credits, "reason": "signup_bonus"}
        ]
    if user.get("isSuspended") is None:
        updates["isSuspended"] = False
    if user.get("createdAt") is None:
        updates["createdAt"] = SERVER_TIMESTAMP
    if user.get("lastActiveAt") is None:
        updates["lastActiveAt"] = SERVER_TIMESTAMP
    if user.get("totalCreditsConsumed") is None:
        updates["totalCreditsConsumed"] = 0
    if user.get("totalGenerations") is None:
        updates["totalGenerations"] = 0
    if user.get("generationsByType") is None:
        updates["generationsByType"] = {"image": 0, "video": 0, "voice": 0, "chat": 0}
    return updates


def check_user_access(user: dict, required_credits: float = 0) -> dict:
    if is_suspended(user):
        return {
            "allowed": False,
            "reason": "Account is suspended. Please contact support.",
            "suspendedAt": user.get("suspendedAt"),
            "suspendReason": user.get("suspendReason") or user.get("suspensionReason"),
        }

    credits = user.get("credits") or 0
    if credits < (required_credits or 0):
        return {
            "allowed": False,
            "reason": "Insufficient credits",
            "currentCredits": credits,
            "requiredCredits": required_credits,
        }
    return {"allowed": True, "credits": credits}


def log_generation(
    db, user_id: str, email: Optional[str], ip_address: Optional[str], payload: dict
) -> dict:
    """
    Records a finished generation and updates the user's counters.

    A successful generation with a cost is charged in the same transaction.
    """
    generation_type = payload.get("generationType")
    if not generation_type:
        raise InvalidRequestError("generationType is required")
    credits_cost = payload.get("creditsCost") or 0
    status = payload.get("status")

    transaction = db.transaction()
    user_ref = db.collection(USERS_COLLECTION).document(user_id)
    log_ref = db.collection(GENERATION_LOGS_COLLECTION).document()

    @firestore.transactional
    def _log_transaction(transaction, user_ref):
        user_doc = user_ref.get(transaction=transaction)
        user = (user_doc.to_dict() or {}) if user_doc.exists else {}

        updates = {
            "totalGenerations": Increment(1),
            "lastActiveAt": SERVER_TIMESTAMP,
            f"generationsByType.{generation_type}": Increment(1),
        }
        if status == "success" and credits_cost > 0:
            _, after = apply_deduction(user, credits_cost)
            updates["credits"] = after
            updates["totalCreditsConsumed"] = Increment(credits_cost)
            updates["creditHistory"] = append_credit_history(
                user.get("creditHistory"),
                {
                    "timestamp": utc_now(),
                    "amount": -credits_cost,
                    "reason": f"{generation_type}_generation",
                    "generationLogId": log_ref.id,
                },
            )

        transaction.set(
            log_ref,
            {
                "userId": user_id,
                "userEmail": email or "unknown",
                "generationType": generation_type,
                "engineId": payload.get("engineId"),
                "engineName": payload.get("engineName"),
                "prompt": _truncate(payload.get("prompt"), GENERATION_LOG_PROMPT_MAX_LENGTH),
                "creditsCost": credits_cost,
                "quality": payload.get("quality"),
                "duration": payload.get("duration"),
                "status": status,
                "errorMessage": payload.get("errorMessage"),
                "processingTime": payload.get("processingTime"),
                "ipAddress": ip_address,
                "country": user.get("country"),
                "createdAt": SERVER_TIMESTAMP,
                "completedAt": (
                    SERVER_TIMESTAMP if status in ("success", "failed") else None
                ),
            },
        )
        if user_doc.exists:
            transaction.update(user_ref, updates)

    _log_transaction(transaction, user_ref)
    return {"success": True, "logId": log_ref.id}


def set_suspension(
    db,
    user_id: str,
    suspend: bool,
    reason: Optional[str],
    admin_uid: str,
    admin_email: str,
) -> dict:
    """
    Suspends or reinstates a user.

    Both successful and failed attempts are written to the admin audit log.
    """
    action = "SUSPEND_USER" if suspend else "UNSUSPEND_USER"
    try:
        user_ref = db.collection(USERS_COLLECTION).document(user_id)
        user_doc = user_ref.get()
        if not user_doc.exists:
            raise UserNotFoundError()
        before = user_doc.to_dict() or {}

        user_ref.update(suspension_update(suspend, reason, admin_uid))
    except Exception as e:
        audit.write_admin_audit(
            db,
            admin_id=admin_uid,
            admin_email=admin_email,
            action=action,
            target_type="user",
            target_id=user_id,
            reason=reason,
            success=False,
            error_message=str(e),
        )
        raise

    audit.write_admin_audit(
        db,
        admin_id=admin_uid,
        admin_email=admin_email,
        action=action,
        target_type="user",
        target_id=user_id,
        changes={
            "before": {"isSuspended": is_suspended(before)},
            "after": {"isSuspended": suspend},
        },
        reason=reason,
    )
    return {
        "success": True,
        "message": f"User {'suspended' if suspend else 'unsuspended'} successfully",
    }
