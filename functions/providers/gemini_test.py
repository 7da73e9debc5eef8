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
from unittest.mock import patch

from providers import gemini
from providers.base import MissingApiKeyError


class GeminiTest(unittest.TestCase):

    @patch("providers.gemini.genai.Client")
    def test_call_predict(self, mock_client_cls):
        # Arrange
        mock_models = mock_client_cls.return_value.models
        mock_models.generate_content.return_value.text = "sad"

        # Act
        result = gemini.call_predict("The opposite of happy is", api_key="key")

        # Assert
        self.assertEqual(result, "sad")
        mock_client_cls.assert_called_once_with(api_key="key")
        kwargs = mock_models.generate_content.call_args.kwargs
        self.assertEqual(kwargs["model"], "gemini-3-flash-preview")
        self.assertEqual(kwargs["contents"], "The opposite of happy is")

    @patch("providers.gemini.genai.Client")
    def test_empty_response_raises(self, mock_client_cls):
        mock_client_cls.return_value.models.generate_content.return_value.text = ""

        with self.assertRaises(gemini.GeminiInvalidResponseException) as ctx:
            gemini.call_predict("hello", api_key="key")

        self.assertEqual(ctx.exception.status_code, 502)

    @patch("providers.gemini.genai.Client")
    def test_missing_key(self, mock_client_cls):
        with self.assertRaises(MissingApiKeyError):
            gemini.call_predict("hello")

        mock_client_cls.assert_not_called()


if __name__ == "__main__":
    unittest.main()
