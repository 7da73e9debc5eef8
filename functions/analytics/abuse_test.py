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
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from analytics import abuse
from shared.types import AbuseSeverity

NOW = datetime(2026, 6, 1, 9, 0, 0, tzinfo=timezone.utc)


def _doc(data, exists=True):
    doc = MagicMock()
    doc.exists = exists
    doc.to_dict.return_value = data
    return doc


def _mock_db():
    db = MagicMock()
    refs = {}
    db.collection.side_effect = lambda name: refs.setdefault(name, MagicMock())
    return db


class LogAbuseTest(unittest.TestCase):

    def test_records_entry_with_user_email(self):
        # Arrange
        db = _mock_db()
        db.collection("users").document.return_value.get.return_value = _doc(
            {"email": "a@b.com"}
        )

        # Act
        abuse.log_abuse(
            db, "u1", "rate_limit", AbuseSeverity.MEDIUM, "too fast", {"aiType": "image"}
        )

        # Assert
        entry = db.collection("abuse_detection").add.call_args[0][0]
        self.assertEqual(entry["userEmail"], "a@b.com")
        self.assertEqual(entry["severity"], "medium")
        self.assertEqual(entry["metadata"], {"aiType": "image"})
        self.assertNotIn("actionTaken", entry)
        db.collection("users").document.return_value.update.assert_not_called()

    def test_critical_abuse_suspends_user(self):
        db = _mock_db()
        db.collection("users").document.return_value.get.return_value = _doc(
            None, exists=False
        )

        abuse.log_abuse(
            db, "u1", "fraud", AbuseSeverity.CRITICAL, "chargebacks", action_taken="suspended"
        )

        entry = db.collection("abuse_detection").add.call_args[0][0]
        self.assertEqual(entry["userEmail"], "unknown")
        self.assertEqual(entry["actionTaken"], "suspended")
        update = db.collection("users").document.return_value.update.call_args[0][0]
        self.assertTrue(update["isSuspended"])
        self.assertEqual(update["suspendedBy"], "system")
        self.assertEqual(update["suspendReason"], "chargebacks")

    def test_failures_are_not_raised(self):
        db = MagicMock()
        db.collection.side_effect = RuntimeError("unavailable")

        with self.assertLogs("analytics.abuse", level="ERROR"):
            abuse.log_abuse(db, "u1", "rate_limit", AbuseSeverity.LOW, "x")


class FindExcessiveActivityTest(unittest.TestCase):

    def test_counts_above_threshold_only(self):
        logs = (
            [{"userId": "heavy", "ipAddress": "1.1.1.1"}] * 4
            + [{"userId": "light", "ipAddress": "2.2.2.2"}] * 2
            + [{"userId": "light"}]
        )

        users, ips = abuse.find_excessive_activity(logs, user_threshold=3, ip_threshold=3)

        self.assertEqual(users, [{"userId": "heavy", "count": 4, "type": "excessive_usage"}])
        self.assertEqual(
            ips, [{"ipAddress": "1.1.1.1", "count": 4, "type": "excessive_requests"}]
        )

    def test_threshold_itself_is_not_flagged(self):
        users, ips = abuse.find_excessive_activity(
            [{"userId": "u1", "ipAddress": "ip"}] * 3, user_threshold=3, ip_threshold=3
        )

        self.assertEqual(users, [])
        self.assertEqual(ips, [])


class DetectAbuseTest(unittest.TestCase):

    def test_flags_and_reports_counts(self):
        # Arrange
        db = _mock_db()
        logs = [_doc({"userId": "u1", "ipAddress": "ip"}) for _ in range(51)]
        db.collection("generation_logs").where.return_value.get.return_value = logs

        # Act
        result = abuse.detect_abuse(db, NOW)

        # Assert
        self.assertEqual(result, {"success": True, "flagged_users": 1, "flagged_ips": 0})
        window = db.collection("generation_logs").where.call_args.kwargs["filter"]
        self.assertEqual(window.value, NOW - timedelta(hours=1))
        flagged = db.collection("abuse_detection").add.call_args[0][0]
        self.assertEqual(flagged["userId"], "u1")
        self.assertEqual(flagged["count"], 51)
        self.assertEqual(flagged["timeWindow"], "1_hour")
        self.assertEqual(flagged["status"], "flagged")

    def test_quiet_hour_flags_nothing(self):
        db = _mock_db()
        db.collection("generation_logs").where.return_value.get.return_value = []

        result = abuse.detect_abuse(db, NOW)

        self.assertEqual(result["flagged_users"], 0)
        db.collection("abuse_detection").add.assert_not_called()


if __name__ == "__main__":
    unittest.main()
