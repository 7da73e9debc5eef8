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
from typing import Mapping, Optional

from shared.constants import (
    BANNED_KEYWORDS,
    MODERATION_REJECTED_MESSAGE,
    PROMPT_HASH_LENGTH,
)
from shared.types import ModerationResult


def moderate_prompt(prompt: str) -> ModerationResult:
    """Flags prompts containing any banned keyword (case-insensitive substring)."""
    lower_prompt = prompt.lower()
    flagged = [keyword for keyword in BANNED_KEYWORDS if keyword in lower_prompt]
    if flagged:
        return ModerationResult(
            allowed=False, reason=MODERATION_REJECTED_MESSAGE, flagged=flagged
        )
    return ModerationResult(allowed=True)


def hash_prompt(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:PROMPT_HASH_LENGTH]


def client_ip(headers: Optional[Mapping[str, str]], remote_addr: Optional[str]) -> str:
    """Returns the caller IP: first X-Forwarded-For hop, then the peer address."""
    forwarded = (headers or {}).get("x-forwarded-for") or (headers or {}).get(
        "X-Forwarded-For"
    )
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return remote_addr or "unknown"
