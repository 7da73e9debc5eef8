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
from typing import Dict, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from shared.constants import CLEANUP_BATCH_LIMIT, DATA_RETENTION_DAYS
from shared.firebase_constants import (
    ABUSE_DETECTION_COLLECTION,
    AI_ACTIVITY_COLLECTION,
    CREDIT_LOGS_COLLECTION,
    USAGE_LOGS_COLLECTION,
)
from shared.time_utils import utc_now

logger = logging.getLogger(__name__)

# Collection name -> timestamp field compared against the retention cutoff.
RETAINED_COLLECTIONS = {
    AI_ACTIVITY_COLLECTION: "timestamp",
    USAGE_LOGS_COLLECTION: "created_at",
    CREDIT_LOGS_COLLECTION: "timestamp",
    ABUSE_DETECTION_COLLECTION: "timestamp",
}


def cleanup_old_data(
    db,
    now: Optional[datetime] = None,
    retention_days: int = DATA_RETENTION_DAYS,
    limit: int = CLEANUP_BATCH_LIMIT,
) -> Dict[str, int]:
    """
    Deletes up to `limit` documents older than the retention window from each
    retained collection.

    Returns:
        The number of deleted documents per collection.
    """
    cutoff = (now or utc_now()) - timedelta(days=retention_days)
    deleted = {}
    for collection_name, field in RETAINED_COLLECTIONS.items():
        old_docs = list(
            db.collection(collection_name)
            .where(filter=FieldFilter(field, "<", cutoff))
            .limit(limit)
            .get()
        )
        if old_docs:
            batch = db.batch()
            for doc in old_docs:
                batch.delete(doc.reference)
            batch.commit()
        deleted[collection_name] = len(old_docs)
        logger.info(f"Deleted {len(old_docs)} old documents from {collection_name}")
    return deleted
