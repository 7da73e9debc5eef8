"""
Seed the engine credit catalogue.

Writes `ai_engines` (credit price per unit of each engine), the per-AI-type
defaults in `credit_pricing` and the default `system_config/credit_config`.
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

from credits.pricing import CreditConfig
from shared.firebase_constants import (
    AI_ENGINES_COLLECTION,
    CREDIT_CONFIG_DOC,
    CREDIT_PRICING_COLLECTION,
    SYSTEM_CONFIG_COLLECTION,
)
from shared.json_utils import convert_keys
from shared.types import AIType

logger = logging.getLogger(__name__)

ENGINES = [
    {
        "id": "dalle",
        "engine_name": "DALL-E 3",
        "ai_type": "image",
        "is_active": True,
        "base_cost": 5,
        "cost_unit": "image",
        "provider": "OpenAI",
        "description": "High-quality image generation with strong prompt understanding",
    },
    {
        "id": "seddream",
        "engine_name": "Seddream Pro",
        "ai_type": "image",
        "is_active": True,
        "base_cost": 2,
        "cost_unit": "image",
        "provider": "Seddream",
        "description": "Fast, cost-effective image generation",
    },
    {
        "id": "midjourney",
        "engine_name": "Midjourney",
        "ai_type": "image",
        "is_active": False,
        "base_cost": 8,
        "cost_unit": "image",
        "provider": "Midjourney",
        "description": "Artistic image generation",
    },
    {
        "id": "klingai",
        "engine_name": "Kling AI",
        "ai_type": "video",
        "is_active": True,
        "base_cost": 10,
        "cost_unit": "second",
        "provider": "Kling AI",
        "description": "Video generation with smooth motion",
    },
    {
        "id": "runway",
        "engine_name": "Runway Gen-2",
        "ai_type": "video",
        "is_active": False,
        "base_cost": 15,
        "cost_unit": "second",
        "provider": "Runway",
        "description": "Professional-grade video generation",
    },
    {
        "id": "pika",
        "engine_name": "Pika Labs",
        "ai_type": "video",
        "is_active": False,
        "base_cost": 8,
        "cost_unit": "second",
        "provider": "Pika",
        "description": "Creative video generation with effects",
    },
    {
        "id": "elevenlabs",
        "engine_name": "ElevenLabs",
        "ai_type": "voice",
        "is_active": True,
        "base_cost": 3,
        "cost_unit": "minute",
        "provider": "ElevenLabs",
        "description": "Natural, expressive voice synthesis",
    },
    {
        "id": "openai-tts",
        "engine_name": "OpenAI TTS",
        "ai_type": "voice",
        "is_active": False,
        "base_cost": 2,
        "cost_unit": "minute",
        "provider": "OpenAI",
        "description": "Text-to-speech from OpenAI",
    },
    {
        "id": "gemini",
        "engine_name": "Gemini Pro",
        "ai_type": "chat",
        "is_active": True,
        "base_cost": 0.001,
        "cost_unit": "token",
        "provider": "Google",
        "description": "Multimodal chat with strong reasoning",
    },
    {
        "id": "gpt4",
        "engine_name": "GPT-4 Turbo",
        "ai_type": "chat",
        "is_active": False,
        "base_cost": 0.003,
        "cost_unit": "token",
        "provider": "OpenAI",
        "description": "OpenAI chat model",
    },
]

DEFAULT_ENGINES = {
    AIType.IMAGE: "dalle",
    AIType.VIDEO: "klingai",
    AIType.VOICE: "elevenlabs",
    AIType.CHAT: "gemini",
}


def build_pricing_configs(engines: list[dict]) -> list[dict]:
    """Groups the engine base costs into one `credit_pricing` doc per AI type."""
    configs = []
    for ai_type, default_engine in DEFAULT_ENGINES.items():
        configs.append(
            {
                "ai_type": ai_type.value,
                "default_engine": default_engine,
                "engines": {
                    engine["id"]: {"cost": engine["base_cost"]}
                    for engine in engines
                    if engine["ai_type"] == ai_type
                },
            }
        )
    return configs


def seed(db) -> dict:
    for engine in ENGINES:
        db.collection(AI_ENGINES_COLLECTION).document(engine["id"]).set(
            {**engine, "created_at": SERVER_TIMESTAMP, "updated_at": SERVER_TIMESTAMP}
        )
        logger.info(
            "%s (%s) - %s",
            engine["engine_name"],
            engine["id"],
            "Active" if engine["is_active"] else "Disabled",
        )

    pricing_configs = build_pricing_configs(ENGINES)
    for config in pricing_configs:
        db.collection(CREDIT_PRICING_COLLECTION).document(config["ai_type"]).set(
            {**config, "updated_at": SERVER_TIMESTAMP, "updated_by": "system"}
        )
        logger.info("%s - default: %s", config["ai_type"], config["default_engine"])

    db.collection(SYSTEM_CONFIG_COLLECTION).document(CREDIT_CONFIG_DOC).set(
        {
            **convert_keys(asdict(CreditConfig()), "snake_to_camel"),
            "updatedAt": SERVER_TIMESTAMP,
            "updatedBy": "system",
        },
        merge=True,
    )

    return {
        "engines": len(ENGINES),
        "active_engines": sum(1 for engine in ENGINES if engine["is_active"]),
        "pricing_configs": len(pricing_configs),
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed AI engines and credit pricing")
    parser.add_argument(
        "--credentials",
        type=str,
        default=None,
        help="Path to a service account key (defaults to application credentials)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    if args.credentials:
        firebase_admin.initialize_app(credentials.Certificate(args.credentials))
    else:
        firebase_admin.initialize_app()

    summary = seed(firestore.client())
    logger.info(
        "Seeded %d engines (%d active) and %d pricing configs",
        summary["engines"],
        summary["active_engines"],
        summary["pricing_configs"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
