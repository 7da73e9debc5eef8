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
from datetime import datetime, timezone

from shared import time_utils


class RangeTest(unittest.TestCase):

    def test_previous_day_range_covers_whole_day(self):
        now = datetime(2024, 3, 1, 0, 5, tzinfo=timezone.utc)

        start, end = time_utils.previous_day_range(now)

        self.assertEqual(start, datetime(2024, 2, 29, tzinfo=timezone.utc))
        self.assertEqual(
            end, datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=timezone.utc)
        )

    def test_previous_month_range_crosses_year(self):
        now = datetime(2025, 1, 1, 0, 10, tzinfo=timezone.utc)

        start, end = time_utils.previous_month_range(now)

        self.assertEqual(start, datetime(2024, 12, 1, tzinfo=timezone.utc))
        self.assertEqual(
            end, datetime(2024, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
        )

    def test_next_month(self):
        self.assertEqual(time_utils.next_month("2024-01"), "2024-02")
        self.assertEqual(time_utils.next_month("2024-12"), "2025-01")


class ParseTest(unittest.TestCase):

    def test_parse_iso_datetime_accepts_zulu_suffix(self):
        parsed = time_utils.parse_iso_datetime("2024-05-01T12:00:00Z")

        self.assertEqual(parsed, datetime(2024, 5, 1, 12, tzinfo=timezone.utc))

    def test_parse_iso_datetime_treats_naive_as_utc(self):
        parsed = time_utils.parse_iso_datetime("2024-05-01")

        self.assertEqual(parsed.tzinfo, timezone.utc)

    def test_parse_iso_datetime_rejects_garbage(self):
        with self.assertRaises(ValueError):
            time_utils.parse_iso_datetime("yesterday")

    def test_as_datetime_reads_epoch_milliseconds(self):
        self.assertEqual(
            time_utils.as_datetime(1_700_000_000_000),
            datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc),
        )

    def test_as_datetime_passes_through_and_ignores_unknown(self):
        naive = datetime(2024, 1, 1)

        self.assertEqual(time_utils.as_datetime(naive).tzinfo, timezone.utc)
        self.assertIsNone(time_utils.as_datetime(None))
        self.assertIsNone(time_utils.as_datetime("2024-01-01"))


if __name__ == "__main__":
    unittest.main()
