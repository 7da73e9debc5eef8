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
from dataclasses import dataclass, field
from typing import Dict

from dacite import from_dict, Config

from shared.constants import (
    ENGINE_COST_CACHE_TTL_SECONDS,
    FIRESTORE_BATCH_SIZE,
    LOSS_DETECTION_PERIOD_DAYS,
    LOSS_THRESHOLD_PERCENT,
)
from shared.firebase_constants import PROFIT_CONFIG_DOC, SYSTEM_CONFIG_COLLECTION

logger = logging.getLogger(__name__)

DAILY_AGGREGATION_SCHEDULE = "1 0 * * *"
MONTHLY_AGGREGATION_SCHEDULE = "0 1 1 * *"
HOURLY_LOSS_DETECTION_SCHEDULE = "0 * * * *"


def _default_schedules() -> Dict[str, str]:
    return {
        "daily": DAILY_AGGREGATION_SCHEDULE,
        "monthly": MONTHLY_AGGREGATION_SCHEDULE,
        "hourly_loss_detection": HOURLY_LOSS_DETECTION_SCHEDULE,
    }


@dataclass
class ProfitSystemConfig:
    """Schema for `system_config/profit_intelligence`."""

    system_version: str = "1.0.0"
    profit_intelligence_enabled: bool = True
    cost_cache_ttl_seconds: int = ENGINE_COST_CACHE_TTL_SECONDS
    loss_detection_period_days: int = LOSS_DETECTION_PERIOD_DAYS
    loss_threshold_percent: float = LOSS_THRESHOLD_PERCENT
    usage_logs_ttl_days: int = 90
    audit_logs_ttl_days: int = 730
    batch_size: int = FIRESTORE_BATCH_SIZE
    aggregation_schedules: Dict[str, str] = field(default_factory=_default_schedules)


def load_profit_config(db) -> ProfitSystemConfig:
    """Reads the profit system configuration, falling back to defaults."""
    doc = db.collection(SYSTEM_CONFIG_COLLECTION).document(PROFIT_CONFIG_DOC).get()
    if not doc.exists:
        logger.info("No profit_intelligence config found, using defaults")
        return ProfitSystemConfig()

    return from_dict(
        data_class=ProfitSystemConfig,
        data=doc.to_dict() or {},
        config=Config(check_types=False),
    )
