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
from typing import List

from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from providers.base import REQUEST_TIMEOUT, ProviderError, parse_json

logger = logging.getLogger(__name__)

ANALYTICS_SCOPE = "https://www.googleapis.com/auth/analytics.readonly"
TOKEN_URI = "https://oauth2.googleapis.com/token"
REALTIME_REPORT_URL = (
    "https://analyticsdata.googleapis.com/v1beta/properties/{property_id}:runRealtimeReport"
)
REALTIME_REPORT_LIMIT = 25


def summarize_rows(rows: List[dict]) -> dict:
    """
    Reduces realtime report rows to totals.

    `activeUsers` is the largest per-event value, `eventCount` is the sum.
    """
    active_users = 0
    event_count = 0
    events = []
    for row in rows:
        dimensions = row.get("dimensionValues") or [{}]
        metrics = row.get("metricValues") or []
        active = int(float((metrics[0] if len(metrics) > 0 else {}).get("value") or 0))
        count = int(float((metrics[1] if len(metrics) > 1 else {}).get("value") or 0))
        active_users = max(active_users, active)
        event_count += count
        events.append(
            {"name": dimensions[0].get("value") or "event", "active": active, "count": count}
        )
    return {"activeUsers": active_users, "eventCount": event_count, "events": events}


def fetch_realtime_report(property_id: str, client_email: str, private_key: str) -> dict:
    """
    Fetches active users and event counts from the GA4 realtime API.

    Raises:
        ProviderError: If the report request fails.
    """
    credentials = service_account.Credentials.from_service_account_info(
        {
            "client_email": client_email,
            # Keys stored in env vars carry literal "\n" sequences.
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": TOKEN_URI,
        },
        scopes=[ANALYTICS_SCOPE],
    )
    session = AuthorizedSession(credentials)
    response = session.post(
        REALTIME_REPORT_URL.format(property_id=property_id),
        json={
            "metrics": [{"name": "activeUsers"}, {"name": "eventCount"}],
            "dimensions": [{"name": "eventName"}],
            "limit": REALTIME_REPORT_LIMIT,
        },
        timeout=REQUEST_TIMEOUT,
    )
    if not response.ok:
        logger.error(f"GA realtime request failed: {response.status_code}")
        raise ProviderError(
            response.status_code, response.text or "Failed to fetch GA realtime data"
        )
    return summarize_rows(parse_json(response).get("rows") or [])
