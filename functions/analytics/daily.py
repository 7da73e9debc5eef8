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
from datetime import datetime, timedelta
from typing import Iterable, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from shared.firebase_constants import (
    ANALYTICS_DAILY_COLLECTION,
    ANALYTICS_MONTHLY_COLLECTION,
    GENERATION_LOGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.time_utils import as_datetime, next_month, previous_day_range, utc_now
from shared.types import AIType

logger = logging.getLogger(__name__)

TOP_COUNTRIES_LIMIT = 5

_GENERATION_COUNT_FIELDS = {
    AIType.IMAGE: "imageGenerations",
    AIType.VIDEO: "videoGenerations",
    AIType.VOICE: "voiceGenerations",
    AIType.CHAT: "chatGenerations",
}


def _date_str(value) -> Optional[str]:
    value = as_datetime(value)
    return value.date().isoformat() if value else None


def summarize_users(users: Iterable[dict], date_str: str, now: datetime) -> dict:
    """
    Counts users, recent activity, signups on `date_str` and the credits
    granted on that date (positive `creditHistory` entries).
    """
    day_ago = now - timedelta(days=1)
    week_ago = now - timedelta(days=7)

    summary = {
        "totalUsers": 0,
        "activeUsers24h": 0,
        "activeUsers7d": 0,
        "newSignups": 0,
        "creditsGranted": 0,
    }
    for user in users:
        summary["totalUsers"] += 1
        last_active = as_datetime(user.get("lastActiveAt"))
        if last_active and last_active >= day_ago:
            summary["activeUsers24h"] += 1
        if last_active and last_active >= week_ago:
            summary["activeUsers7d"] += 1
        if _date_str(user.get("createdAt")) == date_str:
            summary["newSignups"] += 1

        for entry in user.get("creditHistory") or []:
            amount = entry.get("amount") or 0
            if amount > 0 and _date_str(entry.get("timestamp")) == date_str:
                summary["creditsGranted"] += amount
    return summary


def summarize_generations(logs: Iterable[dict]) -> dict:
    summary = {field: 0 for field in _GENERATION_COUNT_FIELDS.values()}
    credits_consumed = 0
    traffic_by_country = {}
    for log in logs:
        field = _GENERATION_COUNT_FIELDS.get(log.get("generationType"))
        if field:
            summary[field] += 1
        credits_consumed += log.get("creditsCost") or 0
        country = log.get("country")
        if country:
            traffic_by_country[country] = traffic_by_country.get(country, 0) + 1

    summary["totalGenerations"] = sum(
        summary[field] for field in _GENERATION_COUNT_FIELDS.values()
    )
    summary["creditsConsumed"] = credits_consumed
    summary["trafficByCountry"] = traffic_by_country
    return summary


def aggregate_daily_analytics(db, now: Optional[datetime] = None) -> dict:
    """Writes `analytics_daily/{YYYY-MM-DD}` for the previous UTC day."""
    now = now or utc_now()
    start, end = previous_day_range(now)
    date_str = start.date().isoformat()
    logger.info(f"Starting daily analytics aggregation for {date_str}")

    users = [doc.to_dict() or {} for doc in db.collection(USERS_COLLECTION).get()]
    logs = (
        doc.to_dict() or {}
        for doc in db.collection(GENERATION_LOGS_COLLECTION)
        .where(filter=FieldFilter("createdAt", ">=", start))
        .where(filter=FieldFilter("createdAt", "<=", end))
        .get()
    )

    daily = {
        "date": date_str,
        **summarize_users(users, date_str, now),
        **summarize_generations(logs),
        "revenue": 0,
        "pageViews": 0,
        "uniqueVisitors": 0,
        "topReferrers": {},
    }
    db.collection(ANALYTICS_DAILY_COLLECTION).document(date_str).set(
        {**daily, "updatedAt": SERVER_TIMESTAMP}
    )
    logger.info(f"Daily analytics aggregated for {date_str}")

    update_monthly_analytics(db, date_str[:7])
    return {"success": True, "date": date_str}


def summarize_month(daily_docs: Iterable[dict], month: str) -> dict:
    """Rolls daily analytics documents up into one month."""
    summed_fields = [
        "newSignups",
        "totalGenerations",
        *_GENERATION_COUNT_FIELDS.values(),
        "creditsConsumed",
        "creditsGranted",
        "revenue",
    ]
    summary = {"month": month, "totalUsers": 0, **{field: 0 for field in summed_fields}}
    total_active_users = 0
    country_counts = {}
    days = 0

    for daily in daily_docs:
        days += 1
        summary["totalUsers"] = max(summary["totalUsers"], daily.get("totalUsers") or 0)
        for field in summed_fields:
            summary[field] += daily.get(field) or 0
        total_active_users += daily.get("activeUsers24h") or 0
        for country, count in (daily.get("trafficByCountry") or {}).items():
            country_counts[country] = country_counts.get(country, 0) + count

    summary["avgDailyActiveUsers"] = round(total_active_users / (days or 1))
    summary["churnRate"] = 0
    summary["topCountries"] = [
        country
        for country, _ in sorted(
            country_counts.items(), key=lambda item: item[1], reverse=True
        )[:TOP_COUNTRIES_LIMIT]
    ]
    return summary


def update_monthly_analytics(db, month: str) -> Optional[dict]:
    """
    Recomputes `analytics_monthly/{YYYY-MM}` from that month's daily documents.

    Failures are logged and not raised so the daily document stays written.
    """
    try:
        snapshot = (
            db.collection(ANALYTICS_DAILY_COLLECTION)
            .where(filter=FieldFilter("date", ">=", f"{month}-01"))
            .where(filter=FieldFilter("date", "<", next_month(month)))
            .get()
        )
        summary = summarize_month((doc.to_dict() or {} for doc in snapshot), month)
        db.collection(ANALYTICS_MONTHLY_COLLECTION).document(month).set(
            {**summary, "updatedAt": SERVER_TIMESTAMP}
        )
        logger.info(f"Monthly analytics updated for {month}")
        return summary
    except Exception as e:
        logger.error(f"Failed to update monthly analytics for {month}: {e}")
        return None
