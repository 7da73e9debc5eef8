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
from typing import List, Optional

import requests

from providers.base import (
    REQUEST_TIMEOUT,
    ProviderError,
    bearer_headers,
    parse_json,
    require_api_key,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com"
DEFAULT_CHAT_MODEL = "gpt-4o-mini"
DEFAULT_IMAGE_MODEL = "dall-e-3"

MISSING_CHAT_KEY_MESSAGE = "Missing OPENAI_CHAT_API_KEY or OPENAI_API_KEY on server"
MISSING_IMAGE_KEY_MESSAGE = "DALL·E 3 API key missing or invalid on backend proxy."


class OpenAIClient:
    """Proxies chat completions and DALL·E image generation."""

    def __init__(
        self,
        chat_api_key: Optional[str],
        image_api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = REQUEST_TIMEOUT,
    ):
        self.chat_api_key = chat_api_key
        self.image_api_key = image_api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def chat(
        self,
        messages: List[dict],
        model: str = DEFAULT_CHAT_MODEL,
        temperature: float = 0.3,
        max_tokens: int = 512,
    ) -> dict:
        api_key = require_api_key(self.chat_api_key, MISSING_CHAT_KEY_MESSAGE, 401)
        return self._post(
            "/v1/chat/completions",
            api_key,
            {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    def generate_image(
        self,
        prompt: str,
        size: str = "1024x1024",
        quality: str = "standard",
        style: str = "vivid",
        model: str = DEFAULT_IMAGE_MODEL,
        response_format: str = "b64_json",
    ) -> dict:
        """Returns the OpenAI response unchanged (`data[0].b64_json` or `url`)."""
        api_key = require_api_key(self.image_api_key, MISSING_IMAGE_KEY_MESSAGE, 401)
        return self._post(
            "/v1/images/generations",
            api_key,
            {
                "model": model,
                "prompt": prompt,
                "size": size,
                "quality": quality,
                "style": style,
                "response_format": response_format,
            },
        )

    def _post(self, path: str, api_key: str, payload: dict) -> dict:
        response = requests.post(
            f"{self.base_url}{path}",
            headers=bearer_headers(api_key),
            json=payload,
            timeout=self.timeout,
        )
        data = parse_json(response)
        if not response.ok:
            logger.error(f"OpenAI error on {path}: {response.status_code}")
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            raise ProviderError(response.status_code, message or "OpenAI error", data)
        return data
