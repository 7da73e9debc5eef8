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
import math
import uuid
from typing import Optional, Tuple

import requests

from providers.base import (
    REQUEST_TIMEOUT,
    ProviderError,
    bearer_headers,
    first_value,
    parse_json,
    require_api_key,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.runware.ai/v1"
DEFAULT_MODEL = "civitai:38784@44716"
DEFAULT_TASK_TYPE = "imageInference"
DEFAULT_SIDE = 512
MIN_SIDE = 128
MAX_SIDE = 2048
SIDE_STEP = 64

IMAGE_URL_PATHS = (
    "imageURL",
    "images.0.url",
    "images.0",
    "data.0.imageURL",
    "url",
    "image_url",
    "image",
)
BASE64_PATHS = (
    "imageBase64",
    "image_base64",
    "base64",
    "b64_json",
    "data.0.imageBase64Data",
)


def _side(ratio_part: float) -> int:
    # Rounds half up to the nearest multiple of SIDE_STEP.
    rounded = math.floor(DEFAULT_SIDE * ratio_part / SIDE_STEP + 0.5) * SIDE_STEP
    return max(MIN_SIDE, min(MAX_SIDE, rounded))


def dimensions_for(aspect_ratio: Optional[str]) -> Tuple[int, int]:
    """Maps an aspect ratio such as "1:1" to (width, height); defaults to 512x512."""
    if aspect_ratio and ":" in aspect_ratio:
        try:
            w, h = (float(part) for part in aspect_ratio.split(":", 1))
        except ValueError:
            return DEFAULT_SIDE, DEFAULT_SIDE
        if w > 0 and h > 0:
            return _side(w), _side(h)
    return DEFAULT_SIDE, DEFAULT_SIDE


def build_task(prompt: str, options: Optional[dict] = None, model: str = DEFAULT_MODEL) -> dict:
    options = options or {}
    width, height = dimensions_for(options.get("aspect_ratio"))
    task = {
        "taskType": options.get("task_type") or DEFAULT_TASK_TYPE,
        "taskUUID": str(uuid.uuid4()),
        "model": options.get("model") or model,
        "positivePrompt": prompt,
        "width": width,
        "height": height,
    }
    negative = options.get("negative_prompt") or options.get("negativePrompt")
    if negative:
        task["negativePrompt"] = negative
    if options.get("image_count"):
        task["numberResults"] = options["image_count"]
    if options.get("image_url"):
        task["inputImage"] = options["image_url"]
    return task


def extract_image(data) -> Optional[str]:
    first = data[0] if isinstance(data, list) and data else data
    image_url = first_value(first, *IMAGE_URL_PATHS)
    if image_url:
        return image_url
    base64_data = first_value(first, *BASE64_PATHS)
    if base64_data:
        return f"data:image/png;base64,{base64_data}"
    return None


class RunwareClient:

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
        api_key = require_api_key(self.api_key, "Runware API key not configured")

        # The API accepts a list of tasks.
        response = requests.post(
            self.base_url,
            headers={**bearer_headers(api_key), "Accept": "application/json"},
            json=[build_task(prompt, options, self.model)],
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"Runware API error: {response.status_code} {response.text}")
            raise ProviderError(
                response.status_code,
                f"Runware.ai API error: {response.status_code} - {response.text}",
            )

        data = parse_json(response)
        image = extract_image(data)
        if not image:
            raise ProviderError(
                500, "Runware.ai did not return any image URL or base64 data", data
            )
        return image
