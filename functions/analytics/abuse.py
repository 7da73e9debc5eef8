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

from credits.suspension import suspension_update
from shared.constants import (
    ABUSE_IP_REQUESTS_PER_HOUR,
    ABUSE_USER_GENERATIONS_PER_HOUR,
)
from shared.firebase_constants import (
    ABUSE_DETECTION_COLLECTION,
    GENERATION_LOGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.time_utils import utc_now
from shared.types import AbuseSeverity

logger = logging.getLogger(__name__)


def log_abuse(
    db,
    user_id: str,
    abuse_type: str,
    severity: str,
    description: str,
    metadata: Optional[dict] = None,
    action_taken: Optional[str] = None,
) -> None:
    """
    Records an abuse event. Critical events also suspend the user.

    Failures are logged and not raised, so abuse logging never blocks the
    request that triggered it.
    """
    try:
        user_doc = db.collection(USERS_COLLECTION).document(user_id).get()
        user_email = (user_doc.to_dict() or {}).get("email") if user_doc.exists else None

        entry = {
            "userId": user_id,
            "userEmail": user_email or "unknown",
            "abuseType": abuse_type,
            "severity": str(severity),
            "description": description,
            "metadata": metadata or {},
            "timestamp": SERVER_TIMESTAMP,
        }
        if action_taken:
            entry["actionTaken"] = action_taken
        db.collection(ABUSE_DETECTION_COLLECTION).add(entry)
        logger.warning(f"[ABUSE] {severity} {abuse_type} for user {user_id}: {description}")

        if severity == AbuseSeverity.CRITICAL:
            db.collection(USERS_COLLECTION).document(user_id).update(
                suspension_update(True, description, "system")
            )
            logger.warning(f"Auto-suspended user {user_id} due to critical abuse")
    except Exception as e:
        logger.error(f"Failed to log abuse detection: {e}")


def find_excessive_activity(
    logs: Iterable[dict],
    user_threshold: int = ABUSE_USER_GENERATIONS_PER_HOUR,
    ip_threshold: int = ABUSE_IP_REQUESTS_PER_HOUR,
) -> tuple[list[dict], list[dict]]:
    """
    Counts generation logs per user and per IP.

    Returns:
        (suspicious_users, suspicious_ips). A user or IP is suspicious when
        its count is strictly above the threshold.
    """
    user_counts = {}
    ip_counts = {}
    for log in logs:
        user_id = log.get("userId")
        user_counts[user_id] = user_counts.get(user_id, 0) + 1
        ip = log.get("ipAddress")
        if ip:
            ip_counts[ip] = ip_counts.get(ip, 0) + 1

    users = [
        {"userId": user_id, "count": count, "type": "excessive_usage"}
        for user_id, count in user_counts.items()
        if count > user_threshold
    ]
    ips = [
        {"ipAddress": ip, "count": count, "type": "excessive_requests"}
        for ip, count in ip_counts.items()
        if count > ip_threshold
    ]
    return users, ips


def detect_abuse(db, now: Optional[datetime] = None) -> dict:
    """Flags users and IPs with excessive generation volume over the last hour."""
    now = now or utc_now()
    snapshot = (
        db.collection(GENERATION_LOGS_COLLECTION)
        .where(filter=FieldFilter("createdAt", ">=", now - timedelta(hours=1)))
        .get()
    )
    users, ips = find_excessive_activity(doc.to_dict() or {} for doc in snapshot)

    for detection in users + ips:
        db.collection(ABUSE_DETECTION_COLLECTION).add(
            {
                **detection,
                "timeWindow": "1_hour",
                "timestamp": SERVER_TIMESTAMP,
                "status": "flagged",
            }
        )
        subject = detection.get("userId") or detection.get("ipAddress")
        logger.warning(
            f"Flagged {subject} for {detection['type']}: {detection['count']} requests"
        )

    logger.info(
        f"Abuse detection complete: {len(users)} users, {len(ips)} IPs flagged"
    )
    return {"success": True, "flagged_users": len(users), "flagged_ips": len(ips)}
