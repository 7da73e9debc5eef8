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
from typing import Optional

import requests

from providers.base import REQUEST_TIMEOUT, ProviderError, require_api_key

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.elevenlabs.io"
DEFAULT_VOICE = "Rachel"
DEFAULT_MODEL_ID = "eleven_monolingual_v1"

VOICE_IDS = {
    "Rachel": "21m00Tcm4TlvDq8ikWAM",
    "Domi": "AZnzlk1XvdvUeBnXmlld",
    "Bella": "EXAVITQu4vr4xnSDxMaL",
    "Antoni": "ErXwobaYiN019PkySvjV",
    "Elli": "MF3mGyEYCl7XYWbV9V6O",
    "Josh": "TxGEqnHWrfWFTfGW9XjX",
    "Arnold": "VR6AewLTigWG4xSOukaG",
    "Adam": "pNInz6obpgDQGcFmaJgB",
    "Sam": "yoZ06aMxZJJ28mfd3POQ",
    "Charlotte": "XB0fDUnXU5powFXDhCwa",
    "Emily": "LcfcDJNUP1GQjkzn1xUU",
    "Ethan": "g5CIjZEefAph4nQFvHAz",
    # Gemini voice names
    "Kore": "21m00Tcm4TlvDq8ikWAM",
    "Puck": "TxGEqnHWrfWFTfGW9XjX",
    "Charon": "VR6AewLTigWG4xSOukaG",
    "Zephyr": "XB0fDUnXU5powFXDhCwa",
    "Fenrir": "pNInz6obpgDQGcFmaJgB",
    "Aoede": "LcfcDJNUP1GQjkzn1xUU",
    "Leda": "EXAVITQu4vr4xnSDxMaL",
    "Orus": "ErXwobaYiN019PkySvjV",
}


def resolve_voice_id(voice: Optional[str], options: Optional[dict] = None) -> str:
    return (
        (options or {}).get("voiceIdOverride")
        or VOICE_IDS.get(voice or "")
        or VOICE_IDS[DEFAULT_VOICE]
    )


def build_tts_payload(text: str, options: Optional[dict] = None) -> dict:
    options = options or {}
    voice_settings = options.get("voice_settings") or {}
    settings = {
        "stability": voice_settings.get("stability", 0.5),
        "similarity_boost": voice_settings.get("similarity_boost", 0.5),
    }
    for optional in ("style", "use_speaker_boost"):
        if voice_settings.get(optional) is not None:
            settings[optional] = voice_settings[optional]
    return {
        "text": text,
        "model_id": options.get("model_id") or DEFAULT_MODEL_ID,
        "voice_settings": settings,
    }


class ElevenLabsClient:

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def synthesize(
        self, text: str, voice: str = DEFAULT_VOICE, options: Optional[dict] = None
    ) -> bytes:
        """
        Converts text to speech.

        Returns:
            bytes: The MPEG audio.

        Raises:
            ProviderError: On a vendor failure or an empty audio body.
        """
        api_key = require_api_key(self.api_key, "ElevenLabs API key not configured")
        voice_id = resolve_voice_id(voice, options)
        logger.info(f"ElevenLabs request: voice={voice} ({voice_id}), {len(text)} chars")

        response = requests.post(
            f"{self.base_url}/v1/text-to-speech/{voice_id}",
            headers={
                "Accept": "audio/mpeg",
                "Content-Type": "application/json",
                "xi-api-key": api_key,
            },
            json=build_tts_payload(text, options),
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"ElevenLabs API error: {response.status_code} {response.text}")
            raise ProviderError(
                response.status_code,
                f"ElevenLabs API failed: {response.text or response.reason}",
            )
        if not response.content:
            raise ProviderError(500, "Empty audio data received from API")
        return response.content
