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

# Monthly subscription price in USD, keyed by lowercase plan id.
PLAN_PRICING_USD = {
    "free": 0.0,
    "pro": 29.99,
    "ultra": 99.99,
    "enterprise": 299.99,
}

# Cache TTLs
ENGINE_COST_CACHE_TTL_SECONDS = 300
CREDIT_PRICING_CACHE_TTL_SECONDS = 300

# Loss detection
LOSS_DETECTION_PERIOD_DAYS = 30
LOSS_THRESHOLD_PERCENT = -10.0
ALERT_COOLDOWN_HOURS = 24
CRITICAL_MARGIN_PERCENT = -50.0
HIGH_MARGIN_PERCENT = -25.0
UNKNOWN_EMAIL = "unknown@example.com"

# Firestore batch write limit
FIRESTORE_BATCH_SIZE = 500

# Default query limits for admin listings
PROFIT_AGGREGATES_DEFAULT_LIMIT = 30
LOSS_USERS_DEFAULT_LIMIT = 100

# Per-user, per-ai-type rate limits (requests per window)
RATE_LIMIT_WINDOW_MINUTES = 60
RATE_LIMIT_MAX_REQUESTS = {
    "image": 50,
    "video": 10,
    "voice": 30,
    "chat": 100,
}
RATE_LIMIT_DEFAULT_MAX_REQUESTS = 50
RATE_LIMIT_EXCEEDED_MESSAGE = "Rate limit exceeded. Please try again later."
RATE_LIMIT_PURGE_LIMIT = 1000

# Per-IP rate limits
IP_RATE_LIMIT_WINDOW_MINUTES = 10
IP_RATE_LIMIT_MAX_REQUESTS = 100
IP_RATE_LIMIT_EXCEEDED_MESSAGE = (
    "Too many requests from this IP address. Please try again later."
)

# Plan-based hourly/daily request limits
DEFAULT_PLAN_RATE_LIMITS = {
    "free": {"maxPerHour": 5, "maxPerDay": 20},
    "basic": {"maxPerHour": 20, "maxPerDay": 100},
    "premium": {"maxPerHour": 100, "maxPerDay": 500},
}

# Legacy credit configuration (system_config/credit_config)
DEFAULT_IMAGE_COST = 1
DEFAULT_VIDEO_COST_PER_SECOND = 5
DEFAULT_VOICE_COST_PER_MINUTE = 2
DEFAULT_CHAT_COST_PER_TOKEN = 0.001
DEFAULT_VIDEO_DURATION_SECONDS = 5
DEFAULT_VOICE_DURATION_SECONDS = 60
DEFAULT_CHAT_TOKENS = 100

# Users
DEFAULT_SIGNUP_CREDITS = 10
CREDIT_HISTORY_CAP = 100
LOGGED_PROMPT_MAX_LENGTH = 100
GENERATION_LOG_PROMPT_MAX_LENGTH = 500
PROMPT_HASH_LENGTH = 16

# Content moderation
BANNED_KEYWORDS = [
    "violence",
    "gore",
    "nsfw",
    "nude",
    "explicit",
    "porn",
    "illegal",
    "weapon",
    "drug",
    "hate",
    "kill",
    "murder",
    "terrorist",
    "bomb",
    "abuse",
    "child",
]
MODERATION_REJECTED_MESSAGE = "Prompt contains inappropriate or prohibited content"

# Abuse detection
ABUSE_USER_GENERATIONS_PER_HOUR = 50
ABUSE_IP_REQUESTS_PER_HOUR = 100

# Data retention
DATA_RETENTION_DAYS = 90
CLEANUP_BATCH_LIMIT = 500
