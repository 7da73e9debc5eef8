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
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
POLL_DELAY_SECONDS = 3

# Placeholder values that deployment tooling leaves behind for unset secrets.
_UNSET_KEY_VALUES = {"", '""', "undefined"}


class ProviderError(Exception):
    """A vendor call failed. `status_code` is relayed to the caller."""

    def __init__(self, status_code: int, message: str, details: Any = None):
        self.status_code = status_code
        self.message = message
        self.details = details
        super().__init__(message)


class MissingApiKeyError(ProviderError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(status_code, message)


def is_configured(api_key: Optional[str]) -> bool:
    return api_key is not None and api_key.strip() not in _UNSET_KEY_VALUES


def require_api_key(api_key: Optional[str], message: str, status_code: int = 500) -> str:
    if not is_configured(api_key):
        raise MissingApiKeyError(message, status_code)
    return api_key


def parse_json(response: requests.Response) -> Any:
    """Returns the JSON body, or `{}` when the body is empty or not JSON."""
    try:
        return response.json() if response.content else {}
    except ValueError:
        return {}


def first_value(data: Any, *paths: str) -> Any:
    """
    Returns the first non-empty value found at any of the dotted `paths`.

    Integer path segments index into lists, e.g. "images.0.url".
    """
    for path in paths:
        value = data
        for segment in path.split("."):
            if isinstance(value, dict):
                value = value.get(segment)
            elif isinstance(value, list) and segment.isdigit():
                index = int(segment)
                value = value[index] if index < len(value) else None
            else:
                value = None
            if value is None:
                break
        if value:
            return value
    return None


def bearer_headers(api_key: str) -> dict:
    return {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
