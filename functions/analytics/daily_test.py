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

from analytics import daily

NOW = datetime(2026, 6, 1, 0, 5, 0, tzinfo=timezone.utc)
YESTERDAY = datetime(2026, 5, 31, 14, 0, 0, tzinfo=timezone.utc)


def _doc(data):
    doc = MagicMock()
    doc.to_dict.return_value = data
    return doc


def _mock_db():
    db = MagicMock()
    refs = {}
    db.collection.side_effect = lambda name: refs.setdefault(name, MagicMock())
    return db


class SummarizeUsersTest(unittest.TestCase):

    def test_counts_activity_signups_and_grants(self):
        # Arrange
        users = [
            {
                "lastActiveAt": NOW - timedelta(hours=2),
                "createdAt": YESTERDAY,
                "creditHistory": [
                    {"timestamp": YESTERDAY, "amount": 10},
                    {"timestamp": YESTERDAY, "amount": -3},
                    {"timestamp": NOW - timedelta(days=5), "amount": 50},
                ],
            },
            {"lastActiveAt": NOW - timedelta(days=3), "createdAt": NOW - timedelta(days=30)},
            # Legacy documents store epoch milliseconds.
            {"lastActiveAt": (NOW - timedelta(days=9)).timestamp() * 1000},
        ]

        # Act
        summary = daily.summarize_users(users, "2026-05-31", NOW)

        # Assert
        self.assertEqual(
            summary,
            {
                "totalUsers": 3,
                "activeUsers24h": 1,
                "activeUsers7d": 2,
                "newSignups": 1,
                "creditsGranted": 10,
            },
        )


class SummarizeGenerationsTest(unittest.TestCase):

    def test_counts_by_type_and_country(self):
        logs = [
            {"generationType": "image", "creditsCost": 1, "country": "DE"},
            {"generationType": "image", "creditsCost": 1, "country": "US"},
            {"generationType": "video", "creditsCost": 25, "country": "DE"},
            {"generationType": "unknown", "creditsCost": 2},
        ]

        summary = daily.summarize_generations(logs)

        self.assertEqual(summary["imageGenerations"], 2)
        self.assertEqual(summary["videoGenerations"], 1)
        self.assertEqual(summary["voiceGenerations"], 0)
        self.assertEqual(summary["totalGenerations"], 3)
        self.assertEqual(summary["creditsConsumed"], 29)
        self.assertEqual(summary["trafficByCountry"], {"DE": 2, "US": 1})


class SummarizeMonthTest(unittest.TestCase):

    def test_rolls_up_days(self):
        days = [
            {
                "totalUsers": 100,
                "newSignups": 3,
                "totalGenerations": 10,
                "activeUsers24h": 10,
                "trafficByCountry": {"DE": 5, "US": 1},
            },
            {
                "totalUsers": 104,
                "newSignups": 4,
                "totalGenerations": 20,
                "activeUsers24h": 21,
                "trafficByCountry": {"US": 7, "FR": 2},
            },
        ]

        summary = daily.summarize_month(days, "2026-05")

        self.assertEqual(summary["month"], "2026-05")
        self.assertEqual(summary["totalUsers"], 104)
        self.assertEqual(summary["newSignups"], 7)
        self.assertEqual(summary["totalGenerations"], 30)
        self.assertEqual(summary["avgDailyActiveUsers"], 16)
        self.assertEqual(summary["topCountries"], ["US", "DE", "FR"])

    def test_empty_month(self):
        summary = daily.summarize_month([], "2026-05")

        self.assertEqual(summary["avgDailyActiveUsers"], 0)
        self.assertEqual(summary["topCountries"], [])

    def test_top_countries_are_capped(self):
        traffic = {country: i for i, country in enumerate("ABCDEFG", start=1)}

        summary = daily.summarize_month([{"trafficByCountry": traffic}], "2026-05")

        self.assertEqual(summary["topCountries"], ["G", "F", "E", "D", "C"])


class AggregateDailyAnalyticsTest(unittest.TestCase):

    def test_writes_daily_and_monthly_documents(self):
        # Arrange
        db = _mock_db()
        db.collection("users").get.return_value = [
            _doc({"lastActiveAt": NOW - timedelta(hours=1), "createdAt": YESTERDAY})
        ]
        db.collection("generation_logs").where.return_value.where.return_value.get.return_value = [
            _doc({"generationType": "chat", "creditsCost": 1, "country": "DE"})
        ]
        db.collection("analytics_daily").where.return_value.where.return_value.get.return_value = [
            _doc({"totalUsers": 1, "totalGenerations": 1, "activeUsers24h": 1})
        ]

        # Act
        result = daily.aggregate_daily_analytics(db, NOW)

        # Assert
        self.assertEqual(result, {"success": True, "date": "2026-05-31"})
        db.collection("analytics_daily").document.assert_called_once_with("2026-05-31")
        written = db.collection("analytics_daily").document.return_value.set.call_args[0][0]
        self.assertEqual(written["chatGenerations"], 1)
        self.assertEqual(written["newSignups"], 1)
        self.assertEqual(written["revenue"], 0)
        db.collection("analytics_monthly").document.assert_called_once_with("2026-05")
        monthly = db.collection("analytics_monthly").document.return_value.set.call_args[0][0]
        self.assertEqual(monthly["totalGenerations"], 1)

    def test_monthly_query_bounds(self):
        db = _mock_db()
        days = db.collection("analytics_daily")
        days.where.return_value.where.return_value.get.return_value = []

        daily.update_monthly_analytics(db, "2026-12")

        lower = days.where.call_args.kwargs["filter"]
        upper = days.where.return_value.where.call_args.kwargs["filter"]
        self.assertEqual(lower.value, "2026-12-01")
        self.assertEqual(upper.value, "2027-01")

    def test_monthly_failure_is_logged(self):
        db = MagicMock()
        db.collection.side_effect = RuntimeError("unavailable")

        with self.assertLogs("analytics.daily", level="ERROR"):
            self.assertIsNone(daily.update_monthly_analytics(db, "2026-05"))


if __name__ == "__main__":
    unittest.main()
