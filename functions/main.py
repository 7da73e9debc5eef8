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

# Cloud functions for the AI studio backend - credits, billing, profit
# intelligence and admin analytics.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import functools
from dataclasses import asdict
from typing import Optional

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options, scheduler_fn
from firebase_functions.firestore_fn import (
    on_document_created,
    on_document_written,
    Event,
    Change,
    DocumentSnapshot,
)
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

# Local application imports
from analytics import abuse, daily, retention
from credits import ledger, moderation, pricing, rate_limit
from profit import aggregation, costs, loss_detection
from profit.config import (
    DAILY_AGGREGATION_SCHEDULE,
    HOURLY_LOSS_DETECTION_SCHEDULE,
    MONTHLY_AGGREGATION_SCHEDULE,
    load_profit_config,
)
from shared.constants import PROFIT_AGGREGATES_DEFAULT_LIMIT, LOSS_USERS_DEFAULT_LIMIT
from shared.errors import (
    AccountSuspendedError,
    EngineNotFoundError,
    EngineUnavailableError,
    InsufficientCreditsError,
    InvalidRequestError,
    NotFoundError,
    PricingNotFoundError,
    PromptRejectedError,
    RateLimitedError,
    UserNotFoundError,
)
from shared.firebase_constants import (
    CREDIT_RULES_COLLECTION,
    DEFAULT_CREDIT_RULES_DOC,
    USAGE_LOGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.json_utils import to_jsonable
from shared.time_utils import parse_iso_datetime
from shared.types import PeriodType, UserRole

initialize_app()

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)
SUPER_ADMIN_ROLES = (UserRole.SUPER_ADMIN,)

ANALYTICS_DAILY_SCHEDULE = "5 0 * * *"
HOURLY_SCHEDULE = "0 * * * *"
CLEANUP_SCHEDULE = "0 3 * * *"
LONG_JOB_TIMEOUT_SEC = 540

_UTC = "UTC"

_ERROR_CODES = (
    ((InvalidRequestError, PromptRejectedError), https_fn.FunctionsErrorCode.INVALID_ARGUMENT),
    (
        (UserNotFoundError, EngineNotFoundError, PricingNotFoundError, NotFoundError),
        https_fn.FunctionsErrorCode.NOT_FOUND,
    ),
    (
        (InsufficientCreditsError, EngineUnavailableError),
        https_fn.FunctionsErrorCode.FAILED_PRECONDITION,
    ),
    ((AccountSuspendedError,), https_fn.FunctionsErrorCode.PERMISSION_DENIED),
    ((RateLimitedError,), https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED),
)


def _to_https_error(e: Exception) -> https_fn.HttpsError:
    for error_types, code in _ERROR_CODES:
        if isinstance(e, error_types):
            return https_fn.HttpsError(code, str(e))
    logger.error(f"Unexpected error: {e}")
    return https_fn.HttpsError(https_fn.FunctionsErrorCode.INTERNAL, str(e) or "Internal error")


def _callable_errors(func):
    """Maps domain errors raised by `func` to HttpsError and makes its result JSON-safe."""

    @functools.wraps(func)
    def wrapper(req: https_fn.CallableRequest):
        try:
            return to_jsonable(func(req))
        except https_fn.HttpsError:
            raise
        except Exception as e:
            raise _to_https_error(e) from e

    return wrapper


def _require_uid(req: https_fn.CallableRequest) -> str:
    if req.auth is None or not req.auth.uid:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "User must be authenticated",
        )
    return req.auth.uid


def _caller_email(req: https_fn.CallableRequest) -> str:
    return (req.auth.token or {}).get("email") or "unknown"


def _require_role(db, req: https_fn.CallableRequest, roles) -> str:
    """Returns the caller uid if their `users` doc holds one of `roles`."""
    uid = _require_uid(req)
    user_doc = db.collection(USERS_COLLECTION).document(uid).get()
    role = (user_doc.to_dict() or {}).get("role") if user_doc.exists else None
    if role not in roles:
        message = (
            "Super Admin only" if roles == SUPER_ADMIN_ROLES else "Admin access required"
        )
        raise https_fn.HttpsError(https_fn.FunctionsErrorCode.PERMISSION_DENIED, message)
    return uid


def _client_ip(req: https_fn.CallableRequest) -> str:
    raw = req.raw_request
    return moderation.client_ip(raw.headers, raw.remote_addr)


def _user_agent(req: https_fn.CallableRequest) -> Optional[str]:
    return req.raw_request.headers.get("User-Agent")


def _invalid_argument(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(https_fn.FunctionsErrorCode.INVALID_ARGUMENT, message)


# ==============================================================================
# Credits
# ==============================================================================


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def validate_and_deduct_credits(req: https_fn.CallableRequest) -> dict:
    user_id = _require_uid(req)
    ai_type = req.data.get("aiType")
    service = req.data.get("service")
    if not ai_type or not service:
        raise _invalid_argument("Missing required parameters")

    db = firestore.client()
    return ledger.validate_and_deduct_credits(
        db,
        user_id,
        ai_type,
        service,
        prompt=req.data.get("prompt"),
        duration=req.data.get("duration"),
        tokens=req.data.get("tokens"),
        ip_address=_client_ip(req),
        user_agent=_user_agent(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def update_ai_activity_status(req: https_fn.CallableRequest) -> dict:
    _require_uid(req)
    db = firestore.client()
    return ledger.update_activity_status(
        db,
        req.data.get("activityId"),
        status=req.data.get("status"),
        progress=req.data.get("progress"),
        result_url=req.data.get("resultUrl"),
        error_message=req.data.get("errorMessage"),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def grant_credits_to_user(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, ADMIN_ROLES)
    amount = req.data.get("amount")
    if not req.data.get("userId") or not amount or amount <= 0:
        raise _invalid_argument("Invalid parameters")

    return ledger.grant_credits(
        db,
        req.data["userId"],
        amount,
        req.data.get("reason"),
        admin_uid=admin_uid,
        admin_email=_caller_email(req),
        kind=req.data.get("type") or "grant",
        ip_address=_client_ip(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def update_credit_configuration(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, ADMIN_ROLES)
    return pricing.update_credit_config(
        db, req.data.get("config"), admin_uid, _caller_email(req), _client_ip(req)
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def validate_and_deduct_engine_credits(req: https_fn.CallableRequest) -> dict:
    user_id = _require_uid(req)
    ai_type = req.data.get("ai_type")
    engine_id = req.data.get("engine_id")
    input_size = req.data.get("input_size")
    if not ai_type or not engine_id or not input_size:
        raise _invalid_argument("Missing required fields")

    db = firestore.client()
    return ledger.validate_and_deduct_engine_credits(
        db,
        user_id,
        ai_type,
        engine_id,
        input_size,
        prompt=req.data.get("prompt"),
        metadata=req.data.get("metadata"),
        ip_address=_client_ip(req),
        user_agent=_user_agent(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def get_engine_pricing(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    return pricing.list_engine_pricing(
        db,
        ai_type=req.data.get("ai_type"),
        include_inactive=bool(req.data.get("include_inactive")),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def get_credit_cost(req: https_fn.CallableRequest) -> dict:
    user_plan = req.data.get("user_plan")
    ai_type = req.data.get("ai_type")
    engine_id = req.data.get("engine_id")
    input_size = req.data.get("input_size")
    if (
        not user_plan
        or not ai_type
        or not engine_id
        or isinstance(input_size, bool)
        or not isinstance(input_size, (int, float))
    ):
        raise _invalid_argument(
            "Missing required parameters: user_plan, ai_type, engine_id, input_size"
        )

    db = firestore.client()
    quote = pricing.resolve_credit_cost(db, user_plan, ai_type, engine_id, input_size)
    return {"success": True, **asdict(quote)}


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def update_engine_config(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, ADMIN_ROLES)
    return pricing.update_engine_config(
        db,
        req.data.get("engine_id"),
        req.data.get("updates"),
        admin_uid,
        _caller_email(req),
        _client_ip(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def update_credit_pricing_config(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, ADMIN_ROLES)
    return pricing.update_credit_pricing(
        db,
        req.data.get("ai_type"),
        req.data.get("pricing"),
        admin_uid,
        _caller_email(req),
        _client_ip(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def check_user_suspension(req: https_fn.CallableRequest) -> dict:
    user_id = _require_uid(req)
    db = firestore.client()
    user_doc = db.collection(USERS_COLLECTION).document(user_id).get()
    if not user_doc.exists:
        raise UserNotFoundError()
    return ledger.check_user_access(
        user_doc.to_dict() or {}, req.data.get("requiredCredits") or 0
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def log_generation(req: https_fn.CallableRequest) -> dict:
    user_id = _require_uid(req)
    db = firestore.client()
    return ledger.log_generation(
        db, user_id, _caller_email(req), _client_ip(req), req.data or {}
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def suspend_user(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, SUPER_ADMIN_ROLES)
    user_id = req.data.get("userId")
    if not user_id:
        raise _invalid_argument("Missing userId")

    return ledger.set_suspension(
        db,
        user_id,
        bool(req.data.get("suspend")),
        req.data.get("reason"),
        admin_uid=admin_uid,
        admin_email=_caller_email(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def grant_credits(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, SUPER_ADMIN_ROLES)
    amount = req.data.get("amount")
    if not req.data.get("userId") or not amount or amount <= 0:
        raise _invalid_argument("Amount must be positive")

    return ledger.grant_credits(
        db,
        req.data["userId"],
        amount,
        req.data.get("reason"),
        admin_uid=admin_uid,
        admin_email=_caller_email(req),
        kind="admin_grant",
        audit_action="GRANT_CREDITS",
        ip_address=_client_ip(req),
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def check_rate_limit(req: https_fn.CallableRequest) -> dict:
    user_id = _require_uid(req)
    db = firestore.client()
    return rate_limit.check_plan_rate_limit(db, user_id)


# ==============================================================================
# Profit intelligence
# ==============================================================================


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def get_cost_estimate(req: https_fn.CallableRequest) -> dict:
    _require_uid(req)
    engine_id = req.data.get("engine_id")
    usage_units = req.data.get("usage_units")
    if not engine_id or not usage_units:
        raise _invalid_argument("Missing engine_id or usage_units")

    db = firestore.client()
    estimate = costs.estimate_cost(db, engine_id, usage_units)
    return {"success": True, "data": asdict(estimate)}


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def update_engine_cost(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, SUPER_ADMIN_ROLES)
    engine_id = req.data.get("engine_id")
    cost_per_unit = req.data.get("cost_per_unit")
    if not engine_id or cost_per_unit is None:
        raise _invalid_argument("Missing required fields")

    costs.update_engine_cost(
        db, engine_id, cost_per_unit, admin_uid, reason=req.data.get("reason")
    )
    return {"success": True, "message": f"Engine {engine_id} cost updated"}


@https_fn.on_call(timeout_sec=LONG_JOB_TIMEOUT_SEC, memory=options.MemoryOption.GB_2)
@_callable_errors
def trigger_manual_aggregation(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, SUPER_ADMIN_ROLES)
    period_type = req.data.get("period_type")
    if not req.data.get("period_start") or not req.data.get("period_end") or not period_type:
        raise _invalid_argument("Missing required fields")
    try:
        period_start = parse_iso_datetime(req.data["period_start"])
        period_end = parse_iso_datetime(req.data["period_end"])
    except ValueError as e:
        raise _invalid_argument(f"Invalid period bounds: {e}") from e
    if period_type not in [p.value for p in PeriodType]:
        raise _invalid_argument(f"Invalid period_type: {period_type}")

    logger.info(f"[MANUAL AGGREGATION] Triggered by {admin_uid}")
    aggregate = aggregation.run_aggregation(db, period_start, period_end, period_type)
    return {"success": True, "data": aggregate}


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def get_profit_aggregates(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    _require_role(db, req, SUPER_ADMIN_ROLES)
    aggregates = aggregation.list_profit_aggregates(
        db,
        period_type=req.data.get("period_type"),
        limit=req.data.get("limit") or PROFIT_AGGREGATES_DEFAULT_LIMIT,
    )
    return {"success": True, "data": aggregates, "count": len(aggregates)}


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def get_loss_users(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    _require_role(db, req, SUPER_ADMIN_ROLES)
    return loss_detection.list_loss_users(
        db,
        limit=req.data.get("limit") or LOSS_USERS_DEFAULT_LIMIT,
        sort_by=req.data.get("sort_by") or "profit_margin_percent",
    )


@https_fn.on_call(memory=options.MemoryOption.MB_512)
@_callable_errors
def take_loss_user_action(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    admin_uid = _require_role(db, req, SUPER_ADMIN_ROLES)
    return loss_detection.take_loss_user_action(
        db,
        req.data.get("user_id"),
        req.data.get("action"),
        req.data.get("notes"),
        admin_uid,
    )


@https_fn.on_call(timeout_sec=LONG_JOB_TIMEOUT_SEC, memory=options.MemoryOption.GB_1)
@_callable_errors
def get_loss_plans(req: https_fn.CallableRequest) -> dict:
    db = firestore.client()
    _require_role(db, req, SUPER_ADMIN_ROLES)
    plans = loss_detection.detect_loss_plans(db)
    return {"success": True, "data": plans, "count": len(plans)}


# ==============================================================================
# Firestore triggers
# ==============================================================================


@on_document_created(document="generations/{generationId}")
def on_generation_created(event: Event[DocumentSnapshot | None]) -> None:
    """Writes the costed usage log of a new generation. Never raises."""
    if event.data is None:
        return
    generation_id = event.params["generationId"]
    generation = event.data.to_dict() or {}
    logger.info(f"[GENERATION CREATED] ID: {generation_id}")

    try:
        db = firestore.client()
        profit = costs.calculate_profit(
            db,
            costs.generation_engine_id(generation),
            costs.generation_usage_units(generation),
            generation.get("user_id"),
            generation.get("subscription_plan") or "free",
        )
        usage_log = costs.build_usage_log(generation_id, generation, profit)
        db.collection(USAGE_LOGS_COLLECTION).add(
            {**asdict(usage_log), "created_at": SERVER_TIMESTAMP}
        )
        logger.info(
            f"[USAGE LOG] {generation_id}: cost ${profit.real_cost_usd}, "
            f"revenue ${profit.revenue_estimated_usd}, "
            f"margin {profit.profit_margin_percent}%"
        )
    except Exception as e:
        logger.error(f"Failed to write usage log for {generation_id}: {e}")


@on_document_written(document="loss_users/{userId}")
def on_loss_user_written(event: Event[Change[DocumentSnapshot | None]]) -> None:
    user_id = event.params["userId"]
    before_snapshot = event.data.before
    after_snapshot = event.data.after
    before = (
        before_snapshot.to_dict()
        if before_snapshot is not None and before_snapshot.exists
        else None
    )
    after = (
        after_snapshot.to_dict()
        if after_snapshot is not None and after_snapshot.exists
        else None
    )

    try:
        db = firestore.client()
        loss_detection.handle_loss_user_written(
            db,
            user_id,
            before,
            after,
            after_snapshot.reference if after is not None else None,
        )
    except Exception as e:
        logger.error(f"Failed to raise loss alert for {user_id}: {e}")


@on_document_created(document="users/{userId}")
def on_user_created(event: Event[DocumentSnapshot | None]) -> None:
    """Grants signup credits and fills in default fields of a new user."""
    if event.data is None:
        return
    user_id = event.params["userId"]
    logger.info(f"New user created: {user_id}")

    try:
        db = firestore.client()
        rules_doc = (
            db.collection(CREDIT_RULES_COLLECTION).document(DEFAULT_CREDIT_RULES_DOC).get()
        )
        rules = (rules_doc.to_dict() or {}) if rules_doc.exists else {}
        updates = ledger.initialize_new_user(event.data.to_dict() or {}, rules)
        if updates:
            event.data.reference.update(updates)
        logger.info(f"User {user_id} initialized with {updates.get('credits', 0)} credits")
    except Exception as e:
        logger.error(f"Failed to initialize user {user_id}: {e}")


# ==============================================================================
# Scheduled jobs
# ==============================================================================


def _profit_intelligence_enabled(db, job_name: str) -> bool:
    if load_profit_config(db).profit_intelligence_enabled:
        return True
    logger.info(f"[{job_name}] Profit intelligence disabled, skipping")
    return False


@scheduler_fn.on_schedule(
    schedule=DAILY_AGGREGATION_SCHEDULE,
    timezone=_UTC,
    timeout_sec=LONG_JOB_TIMEOUT_SEC,
    memory=options.MemoryOption.GB_2,
)
def aggregate_daily_profit(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    if not _profit_intelligence_enabled(db, "DAILY AGGREGATION"):
        return
    try:
        aggregate = aggregation.run_daily_aggregation(db)
    except Exception as e:
        logger.error(f"[DAILY AGGREGATION] Failed: {e}")
        raise
    logger.info(
        f"[DAILY AGGREGATION] {aggregate['period_id']}: "
        f"profit ${aggregate['total_profit_usd']}"
    )


@scheduler_fn.on_schedule(
    schedule=MONTHLY_AGGREGATION_SCHEDULE,
    timezone=_UTC,
    timeout_sec=LONG_JOB_TIMEOUT_SEC,
    memory=options.MemoryOption.GB_4,
)
def aggregate_monthly_profit(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    if not _profit_intelligence_enabled(db, "MONTHLY AGGREGATION"):
        return
    try:
        aggregate = aggregation.run_monthly_aggregation(db)
    except Exception as e:
        logger.error(f"[MONTHLY AGGREGATION] Failed: {e}")
        raise
    logger.info(
        f"[MONTHLY AGGREGATION] {aggregate['period_id']}: "
        f"profit ${aggregate['total_profit_usd']}"
    )


@scheduler_fn.on_schedule(
    schedule=HOURLY_LOSS_DETECTION_SCHEDULE,
    timezone=_UTC,
    timeout_sec=LONG_JOB_TIMEOUT_SEC,
    memory=options.MemoryOption.GB_2,
)
def detect_loss_users_hourly(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    if not _profit_intelligence_enabled(db, "LOSS DETECTION"):
        return
    try:
        result = loss_detection.detect_loss_users(db)
    except Exception as e:
        logger.error(f"[LOSS DETECTION] Failed: {e}")
        raise
    logger.info(
        f"[LOSS DETECTION] {result['loss_users']} loss users, "
        f"{result['profitable_users']} profitable"
    )


@scheduler_fn.on_schedule(
    schedule=ANALYTICS_DAILY_SCHEDULE,
    timezone=_UTC,
    timeout_sec=LONG_JOB_TIMEOUT_SEC,
    memory=options.MemoryOption.GB_1,
)
def aggregate_daily_analytics(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    result = daily.aggregate_daily_analytics(db)
    logger.info(f"Daily analytics aggregated for {result['date']}")


@scheduler_fn.on_schedule(schedule=HOURLY_SCHEDULE, timezone=_UTC)
def detect_abuse_hourly(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    result = abuse.detect_abuse(db)
    logger.info(f"Abuse detection finished: {result}")


@scheduler_fn.on_schedule(
    schedule=CLEANUP_SCHEDULE, timezone=_UTC, timeout_sec=LONG_JOB_TIMEOUT_SEC
)
def cleanup_old_data(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    deleted = retention.cleanup_old_data(db)
    logger.info(f"Old data cleaned up: {deleted}")


@scheduler_fn.on_schedule(schedule=HOURLY_SCHEDULE, timezone=_UTC)
def reset_rate_limits(event: scheduler_fn.ScheduledEvent) -> None:
    db = firestore.client()
    rate_limit.purge_expired_windows(db)
