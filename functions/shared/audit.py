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
from dataclasses import asdict
from typing import Any, Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from shared.firebase_constants import (
    ADMIN_AUDIT_LOGS_COLLECTION,
    PROFIT_AUDIT_LOG_COLLECTION,
)
from shared.types import AdminAuditEntry, ProfitAuditEntry

logger = logging.getLogger(__name__)


def write_profit_audit(
    db,
    action_type: str,
    entity_type: str,
    entity_id: str,
    changed_by: str,
    before_value: Any = None,
    after_value: Any = None,
    reason: Optional[str] = None,
) -> None:
    """Appends an entry to the profit audit log."""
    entry = ProfitAuditEntry(
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        changed_by=changed_by,
        changed_at=SERVER_TIMESTAMP,
        before_value=before_value,
        after_value=after_value,
        reason=reason,
    )
    # asdict deep-copies field values, which breaks the sentinel identity.
    db.collection(PROFIT_AUDIT_LOG_COLLECTION).add(
        {**asdict(entry), "changed_at": SERVER_TIMESTAMP}
    )


def write_admin_audit(
    db,
    admin_id: str,
    admin_email: str,
    action: str,
    target_type: str,
    target_id: Optional[str],
    changes: Any = None,
    details: Optional[str] = None,
    reason: Optional[str] = None,
    ip_address: str = "cloud-function",
    success: bool = True,
    error_message: Optional[str] = None,
) -> None:
    """
    Appends an entry to the admin audit log.

    Write failures are logged, not raised.
    """
    entry = AdminAuditEntry(
        adminId=admin_id,
        adminEmail=admin_email,
        action=action,
        targetType=target_type,
        targetId=target_id,
        timestamp=SERVER_TIMESTAMP,
        details=details,
        changesMade=changes,
        reason=reason,
        ipAddress=ip_address,
        success=success,
        errorMessage=error_message,
    )
    try:
        db.collection(ADMIN_AUDIT_LOGS_COLLECTION).add(
            {**asdict(entry), "timestamp": SERVER_TIMESTAMP}
        )
    except Exception as e:
        logger.error(f"Failed to write admin audit log for {action}: {e}")
