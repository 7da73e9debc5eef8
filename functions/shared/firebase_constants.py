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

# Users and credits
USERS_COLLECTION = "users"
CREDIT_LOGS_COLLECTION = "credit_logs"
AI_ACTIVITY_COLLECTION = "ai_activity"
GENERATIONS_COLLECTION = "generations"
GENERATION_LOGS_COLLECTION = "generation_logs"
CREDIT_RULES_COLLECTION = "credit_rules"
DEFAULT_CREDIT_RULES_DOC = "default_rules"

# Pricing
AI_ENGINES_COLLECTION = "ai_engines"
AI_ENGINE_COSTS_COLLECTION = "ai_engine_costs"
CREDIT_PRICING_COLLECTION = "credit_pricing"
PLAN_PRICING_OVERRIDES_COLLECTION = "plan_pricing_overrides"
SUBSCRIPTION_PLANS_COLLECTION = "subscription_plans"

# Profit intelligence
USAGE_LOGS_COLLECTION = "usage_logs"
PROFIT_AGGREGATES_COLLECTION = "profit_aggregates"
LOSS_USERS_COLLECTION = "loss_users"
ADMIN_ALERTS_COLLECTION = "admin_alerts"

# Audit
PROFIT_AUDIT_LOG_COLLECTION = "profit_audit_log"
ADMIN_AUDIT_LOGS_COLLECTION = "admin_audit_logs"

# Abuse and rate limiting
ABUSE_DETECTION_COLLECTION = "abuse_detection"
RATE_LIMITS_COLLECTION = "rate_limits"
IP_RATE_LIMITS_COLLECTION = "ip_rate_limits"
PLAN_RATE_LIMITS_COLLECTION = "plan_rate_limits"

# Analytics
ANALYTICS_DAILY_COLLECTION = "analytics_daily"
ANALYTICS_MONTHLY_COLLECTION = "analytics_monthly"

# System configuration
SYSTEM_CONFIG_COLLECTION = "system_config"
CREDIT_CONFIG_DOC = "credit_config"
PROFIT_CONFIG_DOC = "profit_intelligence"
DEFAULT_CONFIG_DOC = "default"
