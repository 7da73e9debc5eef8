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

import unittest
from unittest.mock import MagicMock

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from shared import audit


class WriteProfitAuditTest(unittest.TestCase):

    def test_writes_entry_with_server_timestamp(self):
        # Arrange
        db = MagicMock()

        # Act
        audit.write_profit_audit(
            db,
            action_type="engine_cost_update",
            entity_type="ai_engine_cost",
            entity_id="dalle_3_standard",
            changed_by="admin-1",
            before_value={"cost_per_unit": 0.04},
            after_value={"cost_per_unit": 0.05},
        )

        # Assert
        db.collection.assert_called_once_with("profit_audit_log")
        entry = db.collection.return_value.add.call_args.args[0]
        self.assertEqual(entry["entity_id"], "dalle_3_standard")
        self.assertEqual(entry["after_value"], {"cost_per_unit": 0.05})
        self.assertIsNone(entry["reason"])
        self.assertIs(entry["changed_at"], SERVER_TIMESTAMP)


class WriteAdminAuditTest(unittest.TestCase):

    def test_writes_camel_case_entry(self):
        # Arrange
        db = MagicMock()

        # Act
        audit.write_admin_audit(
            db,
            admin_id="admin-1",
            admin_email="admin@example.com",
            action="grant_credits",
            target_type="user",
            target_id="user-1",
            changes={"amount": 50},
        )

        # Assert
        db.collection.assert_called_once_with("admin_audit_logs")
        entry = db.collection.return_value.add.call_args.args[0]
        self.assertEqual(entry["adminId"], "admin-1")
        self.assertEqual(entry["targetId"], "user-1")
        self.assertEqual(entry["changesMade"], {"amount": 50})
        self.assertEqual(entry["ipAddress"], "cloud-function")
        self.assertTrue(entry["success"])
        self.assertIsNone(entry["errorMessage"])
        self.assertIs(entry["timestamp"], SERVER_TIMESTAMP)

    def test_write_failure_is_logged_not_raised(self):
        db = MagicMock()
        db.collection.return_value.add.side_effect = RuntimeError("unavailable")

        with self.assertLogs("shared.audit", level="ERROR"):
            audit.write_admin_audit(
                db,
                admin_id="admin-1",
                admin_email="admin@example.com",
                action="suspend_user",
                target_type="user",
                target_id="user-1",
                success=False,
                error_message="boom",
            )


if __name__ == "__main__":
    unittest.main()
