"""
Seed the profit intelligence collections.

Writes the vendor cost of each AI engine, the subscription plan catalogue and
the `system_config/profit_intelligence` document, then verifies the counts and
prints the indexes and TTL policies that must be created by hand.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from profit.config import ProfitSystemConfig
from shared.firebase_constants import (
    AI_ENGINE_COSTS_COLLECTION,
    PROFIT_CONFIG_DOC,
    SUBSCRIPTION_PLANS_COLLECTION,
    SYSTEM_CONFIG_COLLECTION,
)

logger = logging.getLogger(__name__)

SEEDED_BY = "system_init"

ENGINE_COSTS = [
    {
        "engine_id": "dalle_3_standard",
        "provider_name": "OpenAI",
        "ai_type": "image",
        "cost_per_unit": 0.040,
        "unit_type": "image",
        "quality_tier": "standard",
        "resolution": "1024x1024",
        "is_active": True,
        "notes": "DALL·E 3 Standard Quality - 1024x1024",
    },
    {
        "engine_id": "dalle_3_hd",
        "provider_name": "OpenAI",
        "ai_type": "image",
        "cost_per_unit": 0.080,
        "unit_type": "image",
        "quality_tier": "hd",
        "resolution": "1024x1024",
        "is_active": True,
        "notes": "DALL·E 3 HD Quality - 1024x1024",
    },
    {
        "engine_id": "dalle_3_hd_large",
        "provider_name": "OpenAI",
        "ai_type": "image",
        "cost_per_unit": 0.120,
        "unit_type": "image",
        "quality_tier": "hd",
        "resolution": "1792x1024",
        "is_active": True,
        "notes": "DALL·E 3 HD Quality - 1792x1024",
    },
    {
        "engine_id": "gemini_pro_vision",
        "provider_name": "Google",
        "ai_type": "image",
        "cost_per_unit": 0.0025,
        "unit_type": "image",
        "quality_tier": "standard",
        "is_active": True,
        "notes": "Gemini Pro Vision - Image Generation",
    },
    {
        "engine_id": "seddream_video",
        "provider_name": "SEDDREAM",
        "ai_type": "video",
        "cost_per_unit": 0.12,
        "unit_type": "second",
        "resolution": "1920x1080",
        "is_active": True,
        "notes": "SEDDREAM Video Generation - Per Second",
    },
    {
        "engine_id": "openai_sora",
        "provider_name": "OpenAI",
        "ai_type": "video",
        "cost_per_unit": 0.24,
        "unit_type": "second",
        "resolution": "1920x1080",
        "is_active": False,
        "notes": "OpenAI Sora - Per Second (Future)",
    },
    {
        "engine_id": "openai_tts_hd",
        "provider_name": "OpenAI",
        "ai_type": "voice",
        "cost_per_unit": 0.030,
        "unit_type": "1k_tokens",
        "quality_tier": "hd",
        "is_active": True,
        "notes": "OpenAI TTS HD - Per 1k Characters",
    },
    {
        "engine_id": "openai_tts_standard",
        "provider_name": "OpenAI",
        "ai_type": "voice",
        "cost_per_unit": 0.015,
        "unit_type": "1k_tokens",
        "quality_tier": "standard",
        "is_active": True,
        "notes": "OpenAI TTS Standard - Per 1k Characters",
    },
    {
        "engine_id": "gpt_4_turbo",
        "provider_name": "OpenAI",
        "ai_type": "chat",
        "cost_per_unit": 0.03,
        "unit_type": "1k_tokens",
        "is_active": True,
        "notes": "GPT-4 Turbo - Average Cost Per 1k Tokens",
    },
    {
        "engine_id": "gpt_3_5_turbo",
        "provider_name": "OpenAI",
        "ai_type": "chat",
        "cost_per_unit": 0.002,
        "unit_type": "1k_tokens",
        "is_active": True,
        "notes": "GPT-3.5 Turbo - Average Cost Per 1k Tokens",
    },
]

SUBSCRIPTION_PLANS = [
    {
        "plan_id": "free",
        "plan_name": "Free",
        "monthly_price_usd": 0,
        "credits_per_month": 100,
        "features": ["100 credits/month", "Basic models", "Standard quality"],
        "is_active": True,
    },
    {
        "plan_id": "pro",
        "plan_name": "Pro",
        "monthly_price_usd": 29.99,
        "annual_price_usd": 299.99,
        "credits_per_month": 1000,
        "features": ["1000 credits/month", "All models", "HD quality", "Priority support"],
        "is_active": True,
    },
    {
        "plan_id": "ultra",
        "plan_name": "Ultra",
        "monthly_price_usd": 99.99,
        "annual_price_usd": 999.99,
        "credits_per_month": 5000,
        "features": [
            "5000 credits/month",
            "All models",
            "Ultra HD",
            "Dedicated support",
            "API access",
        ],
        "is_active": True,
    },
    {
        "plan_id": "enterprise",
        "plan_name": "Enterprise",
        "monthly_price_usd": 299.99,
        "credits_per_month": 20000,
        "features": [
            "20000 credits/month",
            "Custom models",
            "White-label",
            "SLA",
            "Dedicated account manager",
        ],
        "is_active": True,
    },
]

REQUIRED_INDEXES = """\
Required Firestore indexes (create in the Firebase console):

1. usage_logs
   - user_id (ASC) + created_at (DESC)
   - subscription_plan (ASC) + created_at (DESC)
   - engine_id (ASC) + created_at (DESC)
   - profit_usd (ASC) + created_at (DESC)
2. ai_engine_costs
   - ai_type (ASC) + is_active (ASC)
   - provider_name (ASC) + updated_at (DESC)
3. profit_aggregates
   - period_type (ASC) + period_start (DESC)
   - profit_margin_percent (ASC)
4. loss_users
   - subscription_plan (ASC) + profit_margin_percent (ASC)
   - detected_at (DESC)
"""

TTL_POLICIES = """\
TTL policies (enable with the gcloud CLI):

1. usage_logs - {usage_days} days
   gcloud firestore fields ttls update created_at --collection-group=usage_logs --enable-ttl
2. profit_audit_log - {audit_days} days
   gcloud firestore fields ttls update changed_at --collection-group=profit_audit_log --enable-ttl
"""


def seed_engine_costs(db) -> int:
    batch = db.batch()
    for engine in ENGINE_COSTS:
        doc_ref = db.collection(AI_ENGINE_COSTS_COLLECTION).document(engine["engine_id"])
        batch.set(
            doc_ref,
            {**engine, "updated_at": SERVER_TIMESTAMP, "updated_by": SEEDED_BY},
        )
        logger.info(
            "%s: $%s per %s",
            engine["engine_id"],
            engine["cost_per_unit"],
            engine["unit_type"],
        )
    batch.commit()
    return len(ENGINE_COSTS)


def seed_subscription_plans(db) -> int:
    batch = db.batch()
    for plan in SUBSCRIPTION_PLANS:
        doc_ref = db.collection(SUBSCRIPTION_PLANS_COLLECTION).document(plan["plan_id"])
        batch.set(doc_ref, {**plan, "created_at": SERVER_TIMESTAMP})
        logger.info("%s: $%s/month", plan["plan_name"], plan["monthly_price_usd"])
    batch.commit()
    return len(SUBSCRIPTION_PLANS)


def seed_system_config(db) -> ProfitSystemConfig:
    config = ProfitSystemConfig()
    db.collection(SYSTEM_CONFIG_COLLECTION).document(PROFIT_CONFIG_DOC).set(
        {
            **asdict(config),
            "initialized_at": SERVER_TIMESTAMP,
            "initialized_by": SEEDED_BY,
        }
    )
    logger.info(
        "System config %s: loss threshold %s%%, usage log TTL %s days",
        config.system_version,
        config.loss_threshold_percent,
        config.usage_logs_ttl_days,
    )
    return config


def verify(db) -> bool:
    engine_count = len(list(db.collection(AI_ENGINE_COSTS_COLLECTION).get()))
    plan_count = len(list(db.collection(SUBSCRIPTION_PLANS_COLLECTION).get()))
    config_exists = (
        db.collection(SYSTEM_CONFIG_COLLECTION).document(PROFIT_CONFIG_DOC).get().exists
    )
    logger.info("Engine costs: %d documents", engine_count)
    logger.info("Subscription plans: %d documents", plan_count)
    logger.info("System config: %s", "exists" if config_exists else "missing")
    return (
        engine_count >= len(ENGINE_COSTS)
        and plan_count >= len(SUBSCRIPTION_PLANS)
        and config_exists
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the profit intelligence system")
    parser.add_argument(
        "--credentials",
        type=str,
        default=None,
        help="Path to a service account key (defaults to application credentials)",
    )
    parser.add_argument(
        "--skip-verify",
        action="store_true",
        help="Do not read the seeded collections back",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    if args.credentials:
        firebase_admin.initialize_app(credentials.Certificate(args.credentials))
    else:
        firebase_admin.initialize_app()
    db = firestore.client()

    seed_engine_costs(db)
    seed_subscription_plans(db)
    config = seed_system_config(db)

    print(REQUIRED_INDEXES)
    print(
        TTL_POLICIES.format(
            usage_days=config.usage_logs_ttl_days, audit_days=config.audit_logs_ttl_days
        )
    )

    if not args.skip_verify and not verify(db):
        logger.error("Verification failed: seeded documents are missing")
        return 1
    logger.info("Profit intelligence system seeded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
