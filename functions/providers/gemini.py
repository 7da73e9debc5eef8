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
from google import genai
from google.genai import types
from providers.base import ProviderError, require_api_key

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-flash-preview"
QUERY_RESPONSE_MAX_OUTPUT_TOKENS = 4000


class GeminiInvalidResponseException(ProviderError):
    def __init__(self, message: str = "Gemini returned an empty response"):
        super().__init__(502, message)


def call_predict(
    query: str,
    model: str = DEFAULT_MODEL,
    api_key: str | None = None,
    temperature: float = 0,
) -> str:
    api_key = require_api_key(api_key, "GEMINI_API_KEY is not configured")

    client = genai.Client(api_key=api_key)

    truncated_query = (query[:200] + "...") if len(query) > 200 else query
    logger.info(f"Calling Gemini {model}, prompt: '{truncated_query}'")
    response = client.models.generate_content(
        model=model,
        contents=query,
        config=types.GenerateContentConfig(
            temperature=temperature, max_output_tokens=QUERY_RESPONSE_MAX_OUTPUT_TOKENS
        ),
    )
    if not response.text:
        raise GeminiInvalidResponseException()
    return response.text
