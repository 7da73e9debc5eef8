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

import hashlib
import unittest

from credits import moderation


class ModeratePromptTest(unittest.TestCase):

    def test_clean_prompt_is_allowed(self):
        result = moderation.moderate_prompt("A watercolor painting of a lighthouse")

        self.assertTrue(result.allowed)
        self.assertIsNone(result.reason)
        self.assertEqual(result.flagged, [])

    def test_keywords_match_case_insensitively_as_substrings(self):
        result = moderation.moderate_prompt("Explicit scene with a BOMB and drugs")

        self.assertFalse(result.allowed)
        self.assertEqual(
            result.reason, "Prompt contains inappropriate or prohibited content"
        )
        self.assertEqual(result.flagged, ["explicit", "drug", "bomb"])

    def test_substring_false_positive_is_still_flagged(self):
        # "children's book" contains "child".
        result = moderation.moderate_prompt("children's book cover")

        self.assertEqual(result.flagged, ["child"])


class PromptHashTest(unittest.TestCase):

    def test_hash_is_sha256_prefix(self):
        expected = hashlib.sha256(b"hello").hexdigest()[:16]

        self.assertEqual(moderation.hash_prompt("hello"), expected)
        self.assertEqual(len(moderation.hash_prompt("")), 16)


class ClientIpTest(unittest.TestCase):

    def test_first_forwarded_hop_wins(self):
        headers = {"x-forwarded-for": " 203.0.113.7 , 10.0.0.1"}

        self.assertEqual(moderation.client_ip(headers, "10.0.0.2"), "203.0.113.7")

    def test_falls_back_to_remote_addr_then_unknown(self):
        self.assertEqual(moderation.client_ip({}, "10.0.0.2"), "10.0.0.2")
        self.assertEqual(moderation.client_ip(None, None), "unknown")


if __name__ == "__main__":
    unittest.main()
