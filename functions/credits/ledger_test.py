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
from unittest.mock import MagicMock, patch

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from credits import ledger
from shared.errors import (
    AccountSuspendedError,
    EngineNotFoundError,
    EngineUnavailableError,
    InsufficientCreditsError,
    InvalidRequestError,
    PromptRejectedError,
    RateLimitedError,
    UserNotFoundError,
)
from shared.types import DeductionResult, RateLimitDecision

NOW = datetime(2026, 6, 1, 9, 0, 0, tzinfo=timezone.utc)


def _doc(data, exists=True):
    doc = MagicMock()
    doc.exists = exists
    doc.to_dict.return_value = data
    return doc


def _mock_db(docs):
    """
    A db where `collection(name).document(...).get()` returns `docs[name]`.

    Collections not listed return a missing document.
    """
    db = MagicMock()
    refs = {}

    def collection(name):
        if name not in refs:
            ref = MagicMock()
            data = docs.get(name)
            ref.document.return_value.get.return_value = _doc(data, data is not None)
            refs[name] = ref
        return refs[name]

    db.collection.side_effect = collection
    return db


def _no_transactional():
    return patch(
        "credits.ledger.firestore.transactional", side_effect=lambda fn: fn
    )


class PureHelpersTest(unittest.TestCase):

    def test_apply_deduction(self):
        self.assertEqual(ledger.apply_deduction({"credits": 10}, 3), (10, 7))
        self.assertEqual(ledger.apply_deduction({"credits": 3}, 3), (3, 0))

    def test_apply_deduction_insufficient(self):
        with self.assertRaises(InsufficientCreditsError) as ctx:
            ledger.apply_deduction({"credits": 2}, 5)

        self.assertEqual(str(ctx.exception), "Insufficient credits. Required: 5, Available: 2")

    def test_missing_balance_counts_as_zero(self):
        with self.assertRaises(InsufficientCreditsError):
            ledger.apply_deduction({}, 1)

    def test_credit_history_is_capped(self):
        history = [{"amount": i} for i in range(100)]

        updated = ledger.append_credit_history(history, {"amount": 100})

        self.assertEqual(len(updated), 100)
        self.assertEqual(updated[0], {"amount": 1})
        self.assertEqual(updated[-1], {"amount": 100})
        self.assertEqual(len(history), 100)

    def test_is_suspended_checks_both_flags(self):
        self.assertTrue(ledger.is_suspended({"isSuspended": True}))
        self.assertTrue(ledger.is_suspended({"status": "suspended"}))
        self.assertFalse(ledger.is_suspended({"status": "active"}))
        self.assertFalse(ledger.is_suspended(None))

    def test_initialize_new_user_fills_missing_fields(self):
        updates = ledger.initialize_new_user({"email": "a@b.com"}, {"freeSignupCredits": 25}, NOW)

        self.assertEqual(updates["credits"], 25)
        self.assertEqual(updates["totalCreditsGranted"], 25)
        self.assertEqual(
            updates["creditHistory"],
            [{"timestamp": NOW, "amount": 25, "reason": "signup_bonus"}],
        )
        self.assertFalse(updates["isSuspended"])
        self.assertEqual(updates["generationsByType"]["video"], 0)

    def test_initialize_new_user_keeps_existing_fields(self):
        user = {
            "credits": 0,
            "isSuspended": False,
            "createdAt": NOW,
            "lastActiveAt": NOW,
            "totalCreditsConsumed": 4,
            "totalGenerations": 4,
            "generationsByType": {},
        }

        self.assertEqual(ledger.initialize_new_user(user, None, NOW), {})
        self.assertEqual(ledger.initialize_new_user({}, None, NOW)["credits"], 10)

    def test_check_user_access(self):
        self.assertEqual(
            ledger.check_user_access({"credits": 5}, 3), {"allowed": True, "credits": 5}
        )
        self.assertEqual(
            ledger.check_user_access({"credits": 1}, 3)["reason"], "Insufficient credits"
        )
        suspended = ledger.check_user_access(
            {"isSuspended": True, "suspendReason": "spam"}, 0
        )
        self.assertFalse(suspended["allowed"])
        self.assertEqual(suspended["suspendReason"], "spam")


class DeductCreditsTest(unittest.TestCase):

    @_no_transactional()
    def test_deducts_and_logs(self, _):
        # Arrange
        db = _mock_db({"users": {"credits": 10, "email": "a@b.com", "country": "DE"}})
        transaction = db.transaction.return_value
        user_ref = db.collection("users").document.return_value

        # Act
        result = ledger.deduct_credits(db, "u1", 3, "image generation via dalle", "image")

        # Assert
        self.assertEqual(
            result,
            DeductionResult(
                balance_before=10,
                balance_after=7,
                amount=3,
                user_email="a@b.com",
                user_name=None,
                country="DE",
            ),
        )
        user_ref.get.assert_called_once_with(transaction=transaction)
        transaction.update.assert_called_once_with(
            user_ref, {"credits": 7, "lastCreditUpdate": SERVER_TIMESTAMP}
        )
        credit_log = transaction.set.call_args[0][1]
        self.assertEqual(credit_log["type"], "deduction")
        self.assertEqual(credit_log["balanceAfter"], 7)

    @_no_transactional()
    def test_suspended_user_is_refused(self, _):
        db = _mock_db({"users": {"credits": 10, "status": "suspended"}})

        with self.assertRaises(AccountSuspendedError):
            ledger.deduct_credits(db, "u1", 3, "r")

        db.transaction.return_value.update.assert_not_called()

    @_no_transactional()
    def test_missing_user_is_refused(self, _):
        db = _mock_db({})

        with self.assertRaises(UserNotFoundError):
            ledger.deduct_credits(db, "u1", 3, "r")


class GrantCreditsTest(unittest.TestCase):

    @_no_transactional()
    @patch("credits.ledger.audit")
    def test_grants_and_audits(self, mock_audit, _):
        # Arrange
        db = _mock_db({"users": {"credits": 4, "email": "a@b.com"}})
        transaction = db.transaction.return_value

        # Act
        result = ledger.grant_credits(db, "u1", 6, "promo", "admin-1", "admin@b.com")

        # Assert
        self.assertEqual(result["newBalance"], 10)
        update = transaction.update.call_args[0][1]
        self.assertEqual(update["credits"], 10)
        self.assertEqual(update["creditHistory"][-1]["reason"], "promo")
        self.assertTrue(mock_audit.write_admin_audit.call_args.kwargs.get("success", True))
        self.assertEqual(mock_audit.write_admin_audit.call_args.kwargs["action"], "grant_credits")

    def test_amount_must_be_positive(self):
        with self.assertRaises(InvalidRequestError):
            ledger.grant_credits(MagicMock(), "u1", 0, None, "a", "e")
        with self.assertRaises(InvalidRequestError):
            ledger.grant_credits(MagicMock(), "u1", -5, None, "a", "e")

    @_no_transactional()
    @patch("credits.ledger.audit")
    def test_failure_is_audited_and_raised(self, mock_audit, _):
        db = _mock_db({})

        with self.assertRaises(UserNotFoundError):
            ledger.grant_credits(
                db, "u1", 5, None, "admin-1", "admin@b.com", audit_action="GRANT_CREDITS"
            )

        kwargs = mock_audit.write_admin_audit.call_args.kwargs
        self.assertFalse(kwargs["success"])
        self.assertEqual(kwargs["action"], "GRANT_CREDITS")
        self.assertEqual(kwargs["error_message"], "User not found")


class ActivityTest(unittest.TestCase):

    def test_create_activity_truncates_prompt(self):
        db = MagicMock()
        activity_ref = MagicMock()
        activity_ref.id = "act-1"
        db.collection.return_value.add.return_value = (None, activity_ref)

        activity_id = ledger.create_activity(
            db, "u1", {"email": "a@b.com"}, "image", "dalle", "x" * 150, 1, "ip", "ua"
        )

        self.assertEqual(activity_id, "act-1")
        record = db.collection.return_value.add.call_args[0][0]
        self.assertEqual(record["prompt"], "x" * 100 + "...")
        self.assertEqual(record["status"], "pending")
        self.assertEqual(record["progress"], 0)
        self.assertEqual(len(record["promptHash"]), 16)

    def test_activity_id_is_required(self):
        with self.assertRaises(InvalidRequestError):
            ledger.update_activity_status(MagicMock(), "")

    def test_completion_records_generation(self):
        # Arrange
        started = NOW - timedelta(seconds=12)
        db = _mock_db(
            {
                "ai_activity": {
                    "userId": "u1",
                    "aiType": "video",
                    "service": "Seedance",
                    "engine_id": "seddream_video",
                    "input_size": 5,
                    "creditsUsed": 25,
                    "subscriptionPlan": "pro",
                    "timestamp": started,
                }
            }
        )

        # Act
        ledger.update_activity_status(db, "act-1", "completed", 100, "https://x", None, NOW)

        # Assert
        update = db.collection("ai_activity").document.return_value.update.call_args[0][0]
        self.assertEqual(update["processingTime"], 12000)
        self.assertEqual(update["completedAt"], NOW)
        generations = db.collection("generations")
        generations.document.assert_called_once_with("act-1")
        generation = generations.document.return_value.set.call_args[0][0]
        self.assertEqual(generation["engine_id"], "seddream_video")
        self.assertEqual(generation["usage_units"], 5)
        self.assertEqual(generation["subscription_plan"], "pro")

    def test_failure_does_not_record_generation(self):
        db = _mock_db({"ai_activity": {"userId": "u1", "timestamp": NOW}})

        ledger.update_activity_status(db, "act-1", "failed", None, None, "boom", NOW)

        db.collection("generations").document.assert_not_called()


@patch("credits.ledger.create_activity", return_value="act-1")
@patch("credits.ledger.deduct_credits")
@patch("credits.ledger.abuse")
@patch("credits.ledger.rate_limit")
class ValidateAndDeductCreditsTest(unittest.TestCase):

    def _allow(self, mock_rate_limit):
        mock_rate_limit.check_rate_limit.return_value = RateLimitDecision(allowed=True)
        mock_rate_limit.check_ip_rate_limit.return_value = RateLimitDecision(allowed=True)

    def test_charges_legacy_cost(self, mock_rate_limit, mock_abuse, mock_deduct, _):
        # Arrange
        self._allow(mock_rate_limit)
        db = _mock_db({"users": {"credits": 50}, "system_config": {"videoCostPerSecond": 4}})
        mock_deduct.return_value = DeductionResult(50, 38, 12, "a@b.com")

        # Act
        result = ledger.validate_and_deduct_credits(
            db, "u1", "video", "seedance", "a calm lake", duration=3, ip_address="ip"
        )

        # Assert
        self.assertEqual(
            result,
            {
                "success": True,
                "creditCost": 12,
                "newBalance": 38,
                "activityId": "act-1",
                "message": "Credits validated and deducted successfully",
            },
        )
        self.assertEqual(mock_deduct.call_args[0][2], 12)
        mock_abuse.log_abuse.assert_not_called()

    def test_rejected_prompt_is_logged(self, mock_rate_limit, mock_abuse, mock_deduct, _):
        self._allow(mock_rate_limit)
        db = _mock_db({"users": {"credits": 50}})

        with self.assertRaises(PromptRejectedError):
            ledger.validate_and_deduct_credits(db, "u1", "image", "dalle", "gore")

        self.assertEqual(mock_abuse.log_abuse.call_args[0][2], "inappropriate_prompt")
        self.assertEqual(mock_abuse.log_abuse.call_args[0][3], "high")
        mock_deduct.assert_not_called()

    def test_suspended_user(self, mock_rate_limit, mock_abuse, mock_deduct, _):
        db = _mock_db({"users": {"isSuspended": True}})

        with self.assertRaises(AccountSuspendedError):
            ledger.validate_and_deduct_credits(db, "u1", "image", "dalle")

    def test_ip_limit(self, mock_rate_limit, mock_abuse, mock_deduct, _):
        mock_rate_limit.check_rate_limit.return_value = RateLimitDecision(allowed=True)
        mock_rate_limit.check_ip_rate_limit.return_value = RateLimitDecision(
            allowed=False, reason="Too many"
        )
        db = _mock_db({"users": {"credits": 50}})

        with self.assertRaises(RateLimitedError):
            ledger.validate_and_deduct_credits(db, "u1", "image", "dalle")

        mock_deduct.assert_not_called()


@patch("credits.ledger.create_activity", return_value="act-2")
@patch("credits.ledger.deduct_credits")
@patch("credits.ledger.rate_limit")
class ValidateAndDeductEngineCreditsTest(unittest.TestCase):

    ENGINE = {
        "ai_type": "image",
        "is_active": True,
        "base_cost": 1.5,
        "engine_name": "DALL-E 3",
    }

    def test_charges_engine_price(self, mock_rate_limit, mock_deduct, _):
        mock_rate_limit.check_rate_limit.return_value = RateLimitDecision(allowed=True)
        mock_deduct.return_value = DeductionResult(10, 7, 3, "a@b.com")
        db = _mock_db({"ai_engines": self.ENGINE, "users": {"credits": 10}})

        result = ledger.validate_and_deduct_engine_credits(db, "u1", "image", "dalle", 2)

        self.assertEqual(result["cost"], 3)
        self.assertEqual(result["newBalance"], 7)
        self.assertEqual(result["activityId"], "act-2")
        self.assertEqual(result["message"], "Successfully deducted 3 credits for DALL-E 3")

    def test_engine_checks(self, mock_rate_limit, mock_deduct, _):
        with self.assertRaises(EngineNotFoundError):
            ledger.validate_and_deduct_engine_credits(_mock_db({}), "u1", "image", "x", 1)
        with self.assertRaises(EngineUnavailableError):
            ledger.validate_and_deduct_engine_credits(
                _mock_db({"ai_engines": {**self.ENGINE, "is_active": False}}),
                "u1", "image", "dalle", 1,
            )
        with self.assertRaises(InvalidRequestError):
            ledger.validate_and_deduct_engine_credits(
                _mock_db({"ai_engines": self.ENGINE}), "u1", "video", "dalle", 1
            )
        with self.assertRaises(InvalidRequestError):
            ledger.validate_and_deduct_engine_credits(
                _mock_db({"ai_engines": self.ENGINE}), "u1", "image", "dalle", 0
            )
        mock_deduct.assert_not_called()

    def test_rate_limited(self, mock_rate_limit, mock_deduct, _):
        mock_rate_limit.check_rate_limit.return_value = RateLimitDecision(
            allowed=False, reason="Rate limit exceeded. Please try again later."
        )
        db = _mock_db({"ai_engines": self.ENGINE, "users": {"credits": 10}})

        with self.assertRaises(RateLimitedError):
            ledger.validate_and_deduct_engine_credits(db, "u1", "image", "dalle", 1)


class LogGenerationTest(unittest.TestCase):

    @_no_transactional()
    def test_success_charges_and_records(self, _):
        # Arrange
        db = _mock_db({"users": {"credits": 10, "creditHistory": []}})
        transaction = db.transaction.return_value
        log_ref = db.collection("generation_logs").document.return_value
        log_ref.id = "log-1"
        payload = {
            "generationType": "image",
            "engineId": "dalle",
            "prompt": "p" * 600,
            "creditsCost": 4,
            "status": "success",
        }

        # Act
        result = ledger.log_generation(db, "u1", "a@b.com", "ip", payload)

        # Assert
        self.assertEqual(result, {"success": True, "logId": "log-1"})
        log = transaction.set.call_args[0][1]
        self.assertEqual(len(log["prompt"]), 500)
        self.assertEqual(log["completedAt"], SERVER_TIMESTAMP)
        updates = transaction.update.call_args[0][1]
        self.assertEqual(updates["credits"], 6)
        self.assertIn("generationsByType.image", updates)
        self.assertEqual(updates["creditHistory"][-1]["generationLogId"], "log-1")

    @_no_transactional()
    def test_pending_generation_is_not_charged(self, _):
        db = _mock_db({"users": {"credits": 0}})
        transaction = db.transaction.return_value

        ledger.log_generation(
            db, "u1", None, None, {"generationType": "chat", "creditsCost": 4, "status": "pending"}
        )

        updates = transaction.update.call_args[0][1]
        self.assertNotIn("credits", updates)
        self.assertIsNone(transaction.set.call_args[0][1]["completedAt"])

    @_no_transactional()
    def test_success_without_balance_is_refused(self, _):
        db = _mock_db({"users": {"credits": 1}})

        with self.assertRaises(InsufficientCreditsError):
            ledger.log_generation(
                db, "u1", None, None, {"generationType": "image", "creditsCost": 4, "status": "success"}
            )

    def test_missing_generation_type_is_rejected(self):
        db = _mock_db({"users": {"credits": 10}})

        with self.assertRaises(InvalidRequestError):
            ledger.log_generation(db, "u1", None, None, {"creditsCost": 4})

        db.transaction.assert_not_called()


class SetSuspensionTest(unittest.TestCase):

    @patch("credits.ledger.audit")
    def test_suspend(self, mock_audit):
        db = _mock_db({"users": {"isSuspended": False}})

        result = ledger.set_suspension(db, "u1", True, "fraud", "admin-1", "admin@b.com")

        self.assertEqual(result["message"], "User suspended successfully")
        update = db.collection("users").document.return_value.update.call_args[0][0]
        self.assertTrue(update["isSuspended"])
        self.assertEqual(update["suspendReason"], "fraud")
        self.assertEqual(
            mock_audit.write_admin_audit.call_args.kwargs["changes"],
            {"before": {"isSuspended": False}, "after": {"isSuspended": True}},
        )

    @patch("credits.ledger.audit")
    def test_unknown_user_is_audited_as_failure(self, mock_audit):
        db = _mock_db({})

        with self.assertRaises(UserNotFoundError):
            ledger.set_suspension(db, "u1", False, None, "admin-1", "admin@b.com")

        kwargs = mock_audit.write_admin_audit.call_args.kwargs
        self.assertEqual(kwargs["action"], "UNSUSPEND_USER")
        self.assertFalse(kwargs["success"])


if __name__ == "__main__":
    unittest.main()
