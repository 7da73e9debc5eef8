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
import time
from typing import Optional

import requests

from providers.base import (
    POLL_DELAY_SECONDS,
    REQUEST_TIMEOUT,
    ProviderError,
    bearer_headers,
    first_value,
    parse_json,
    require_api_key,
)
from providers.klingai import pending_task_message

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://ark.ap-southeast.bytepluses.com/api/v3"
DEFAULT_MODEL = "sd-4.5"
MISSING_KEY_MESSAGE = "SEEDREAM_API_KEY is missing. Set it in your environment."

IMAGE_URL_PATHS = ("images.0.url", "image_url", "output.0", "data.0.url")
BASE64_PATHS = ("imageBase64", "image_base64", "base64", "b64_json", "data.0.b64_json")

# Request fields passed through from the caller's options.
_OPTION_FIELDS = (
    "negative_prompt",
    "aspect_ratio",
    "image_url",
    "resolution",
    "quality",
    "seed",
)


def build_request(prompt: str, options: Optional[dict] = None, default_model: str = DEFAULT_MODEL) -> dict:
    options = options or {}
    body = {
        "model": options.get("model") or default_model,
        "prompt": prompt,
        "image_count": options.get("image_count") or 1,
    }
    for field in _OPTION_FIELDS:
        if options.get(field) is not None:
            body[field] = options[field]
    if options.get("guidance") is not None:
        body["cfg_scale"] = options["guidance"]
    return body


def extract_image(data) -> Optional[str]:
    """Returns the image URL, or a PNG data URL when only base64 is returned."""
    image_url = first_value(data, *IMAGE_URL_PATHS)
    if image_url:
        return image_url
    base64_data = first_value(data, *BASE64_PATHS)
    if base64_data:
        return f"data:image/png;base64,{base64_data}"
    return None


class SeedreamClient:

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: int = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.model = model

    def generate_image(self, prompt: str, options: Optional[dict] = None) -> str:
        api_key = require_api_key(self.api_key, MISSING_KEY_MESSAGE)
        endpoint = f"{self.base_url}/images/generations"

        data = self._request("POST", endpoint, api_key, build_request(prompt, options, self.model))
        image = extract_image(data)
        if image:
            return image

        task_id = first_value(data, "task_id", "id", "data.id")
        if not task_id:
            raise ProviderError(500, "Seedream response missing image URL or base64 data", data)

        time.sleep(POLL_DELAY_SECONDS)
        status = self._request("GET", f"{endpoint}/{task_id}", api_key)
        return extract_image(status) or pending_task_message(task_id)

    def _request(self, method: str, url: str, api_key: str, body: Optional[dict] = None):
        response = requests.request(
            method,
            url,
            headers={**bearer_headers(api_key), "Accept": "application/json"},
            json=body,
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"Seedream request failed: {response.status_code} {response.text}")
            raise ProviderError(
                response.status_code,
                response.text or f"Seedream image request failed with status {response.status_code}",
            )
        return parse_json(response)
