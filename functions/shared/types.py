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

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional


class AIType(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    VOICE = "voice"
    CHAT = "chat"


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class PeriodType(StrEnum):
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PricingSource(StrEnum):
    PLAN_OVERRIDE = "plan_override"
    ENGINE_DEFAULT = "engine_default"
    GLOBAL_DEFAULT = "global_default"


class RevenueSource(StrEnum):
    PLAN_ALLOCATION = "plan_allocation"
    FREE_PLAN = "free_plan"


class LossAction(StrEnum):
    RATE_LIMITED = "rate_limited"
    PLAN_UPGRADED = "plan_upgraded"
    MONITORED = "monitored"
    ACCOUNT_SUSPENDED = "account_suspended"


class AlertSeverity(StrEnum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AbuseSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActivityStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class EngineCost:
    """Real vendor cost for one engine, stored in `ai_engine_costs`."""

    engine_id: str
    cost_per_unit: float
    provider_name: Optional[str] = None
    ai_type: Optional[str] = None
    unit_type: Optional[str] = None
    quality_tier: Optional[str] = None
    resolution: Optional[str] = None
    is_active: bool = True
    notes: Optional[str] = None


@dataclass
class ProfitResult:
    real_cost_usd: float
    revenue_estimated_usd: float
    profit_usd: float
    profit_margin_percent: float
    pricing_source: str
    engine_cost_per_unit: float
    revenue_allocation_percent: float = 0.0


@dataclass
class UsageLog:
    """Costed record of one generation, stored in `usage_logs`."""

    user_id: Optional[str]
    subscription_plan: str
    ai_type: str
    engine_id: str
    usage_units: float
    credits_used: float
    created_at: Any  # Firestore timestamp (SERVER_TIMESTAMP on write)
    real_cost_usd: float
    revenue_estimated_usd: float
    profit_usd: float
    profit_margin_percent: float
    pricing_source: str
    request_id: str
    device_type: str = "web"
    country_code: Optional[str] = None
    generation_time_ms: Optional[int] = None


@dataclass
class CostEstimate:
    engine_id: str
    usage_units: float
    cost_per_unit: float
    estimated_cost_usd: float
    unit_type: Optional[str] = None


@dataclass
class LossUser:
    """A user whose margin is below the loss threshold, stored in `loss_users`."""

    user_id: str
    email: str
    subscription_plan: str
    total_cost_usd: float
    total_revenue_usd: float
    total_profit_usd: float
    profit_margin_percent: float
    total_generations: int
    most_used_engine: str
    most_expensive_engine: str
    detected_at: Any  # Firestore timestamp
    last_checked_at: Any
    days_in_loss: int = 1
    alert_sent: bool = False
    notes: Optional[str] = None


@dataclass
class ProfitAuditEntry:
    """Schema for `profit_audit_log` entries."""

    action_type: str
    entity_type: str
    entity_id: str
    changed_by: str
    changed_at: Any  # Firestore timestamp
    before_value: Any = None
    after_value: Any = None
    reason: Optional[str] = None


@dataclass
class AdminAuditEntry:
    """Schema for `admin_audit_logs` entries."""

    adminId: str
    adminEmail: str
    action: str
    targetType: str
    targetId: Optional[str]
    timestamp: Any  # Firestore timestamp
    details: Optional[str] = None
    changesMade: Any = None
    reason: Optional[str] = None
    ipAddress: str = "cloud-function"
    success: bool = True
    errorMessage: Optional[str] = None


@dataclass
class CreditCostQuote:
    cost_per_unit: float
    total_cost: int
    input_size: float
    pricing_source: str
    engine_id: str
    engine_name: str
    ai_type: str
    user_plan: str
    cost_unit: str = "unit"


@dataclass
class DeductionResult:
    balance_before: float
    balance_after: float
    amount: float
    user_email: str
    user_name: Optional[str] = None
    country: Optional[str] = None


@dataclass
class RateLimitDecision:
    allowed: bool
    reason: Optional[str] = None
    reset_at: Any = None
    # Firestore write to apply for this decision. `None` means no write.
    update: Optional[Dict[str, Any]] = None
    create: bool = False
    newly_blocked: bool = False


@dataclass
class ModerationResult:
    allowed: bool
    reason: Optional[str] = None
    flagged: List[str] = field(default_factory=list)
