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

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.klingai.com"
MISSING_KEY_MESSAGE = "KLINGAI_API_KEY is missing. Set it in your environment."

IMAGE_URL_PATHS = ("image_url", "url", "result.image_url", "images.0")
VIDEO_URL_PATHS = ("video_url", "url", "result.video_url")


def pending_task_message(task_id: str, kind: str = "Image") -> str:
    return f"Task ID: {task_id} - {kind} is being generated. Please check back in a moment."


class KlingAIClient:

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def generate_image(
        self, prompt: str, image: Optional[str] = None, options: Optional[dict] = None
    ) -> str:
        """
        Generates an image from text, or from `image` when given.

        A task-based response is polled once. If the image is still not ready,
        a message naming the task id is returned in place of the URL.
        """
        api_key = require_api_key(self.api_key, MISSING_KEY_MESSAGE)
        mode = "image2image" if image else "text2image"
        endpoint = f"{self.base_url}/v1/images/{mode}"
        body = {**(options or {}), "prompt": prompt}
        if image:
            body["image_url"] = image

        data = self._request("POST", endpoint, api_key, body)
        image_url = first_value(data, *IMAGE_URL_PATHS)
        if image_url:
            return image_url

        task_id = first_value(data, "task_id", "id")
        if not task_id:
            raise ProviderError(500, "KlingAI response missing image URL.", data)

        time.sleep(POLL_DELAY_SECONDS)
        status = self._request("GET", f"{endpoint}/{task_id}", api_key)
        return first_value(status, *IMAGE_URL_PATHS) or pending_task_message(task_id)

    def generate_video(self, prompt: str, options: Optional[dict] = None) -> str:
        api_key = require_api_key(self.api_key, MISSING_KEY_MESSAGE)
        options = options or {}
        mode = "image2video" if options.get("image_url") else "text2video"

        data = self._request(
            "POST",
            f"{self.base_url}/v1/videos/{mode}",
            api_key,
            {**options, "prompt": prompt},
        )
        video_url = first_value(data, *VIDEO_URL_PATHS)
        if not video_url:
            raise ProviderError(500, "KlingAI response missing video URL.", data)
        return video_url

    def _request(self, method: str, url: str, api_key: str, body: Optional[dict] = None):
        response = requests.request(
            method,
            url,
            headers=bearer_headers(api_key),
            json=body,
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"KlingAI request failed: {response.status_code} {response.text}")
            raise ProviderError(
                response.status_code,
                response.text or f"KlingAI request failed with status {response.status_code}",
            )
        return parse_json(response)
