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

from typing import Optional

from google.cloud.firestore_v1 import SERVER_TIMESTAMP


def is_suspended(user: Optional[dict]) -> bool:
    """A user is suspended when either suspension flag is set."""
    user = user or {}
    return bool(user.get("isSuspended")) or user.get("status") == "suspended"


def suspension_update(
    suspend: bool, reason: Optional[str] = None, suspended_by: Optional[str] = None
) -> dict:
    """Returns the `users` fields that suspend or reinstate an account."""
    if suspend:
        return {
            "isSuspended": True,
            "status": "suspended",
            "suspendedAt": SERVER_TIMESTAMP,
            "suspendedBy": suspended_by,
            "suspendReason": reason or "No reason provided",
        }
    return {
        "isSuspended": False,
        "status": "active",
        "suspendedAt": None,
        "suspendedBy": None,
        "suspendReason": None,
    }
