import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import Settings, get_settings
from backend.dependencies import (
    get_elevenlabs_client,
    get_klingai_client,
    get_openai_client,
    get_runware_client,
    get_seedream_client,
)
from providers.base import MissingApiKeyError, ProviderError


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.openai = MagicMock()
        self.elevenlabs = MagicMock()
        self.klingai = MagicMock()
        self.seedream = MagicMock()
        self.runware = MagicMock()
        self.settings = Settings(
            GEMINI_API_KEY="gemini-key",
            GA_PROPERTY_ID="123",
            GA_CLIENT_EMAIL="ga@example.com",
            GA_PRIVATE_KEY="key",
        )
        self.app.dependency_overrides.update(
            {
                get_openai_client: lambda: self.openai,
                get_elevenlabs_client: lambda: self.elevenlabs,
                get_klingai_client: lambda: self.klingai,
                get_seedream_client: lambda: self.seedream,
                get_runware_client: lambda: self.runware,
                get_settings: lambda: self.settings,
            }
        )
        self.client = TestClient(self.app)

    def test_chatgpt_passes_response_through(self):
        self.openai.chat.return_value = {"choices": [{"message": {"content": "hi"}}]}

        response = self.client.post(
            "/api/chatgpt",
            json={"messages": [{"role": "user", "content": "hello"}], "temperature": 0.9},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["choices"][0]["message"]["content"], "hi")
        self.assertEqual(self.openai.chat.call_args.kwargs["temperature"], 0.9)
        self.assertEqual(self.openai.chat.call_args.kwargs["model"], "gpt-4o-mini")

    def test_chatgpt_requires_messages(self):
        response = self.client.post("/api/chatgpt", json={"messages": []})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "messages array is required"})
        self.openai.chat.assert_not_called()

    def test_dalle3_requires_prompt(self):
        response = self.client.post("/api/dalle3", json={})

        self.assertEqual(response.status_code, 400)
        self.assertIn("prompt", response.json()["error"])

    def test_dalle3_missing_key(self):
        self.openai.generate_image.side_effect = MissingApiKeyError(
            "DALL·E 3 API key missing or invalid on backend proxy.", 401
        )

        response = self.client.post("/api/dalle3", json={"prompt": "a fox"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(),
            {"error": "DALL·E 3 API key missing or invalid on backend proxy."},
        )

    def test_vendor_error_is_relayed_with_details(self):
        details = {"error": {"message": "Rate limit reached"}}
        self.openai.generate_image.side_effect = ProviderError(
            429, "Rate limit reached", details
        )

        response = self.client.post("/api/dalle3", json={"prompt": "a fox"})

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json(), {"error": "Rate limit reached", "details": details})

    def test_tts_returns_audio(self):
        self.elevenlabs.synthesize.return_value = b"ID3audio"

        response = self.client.post(
            "/api/tts-elevenlabs", json={"text": "hello", "voice": "Kore"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"ID3audio")
        self.assertEqual(response.headers["content-type"], "audio/mpeg")
        self.assertEqual(response.headers["cache-control"], "public, max-age=31536000")
        self.elevenlabs.synthesize.assert_called_once_with("hello", "Kore", {})

    def test_klingai_image_splits_source_image(self):
        self.klingai.generate_image.return_value = "https://img/1.png"

        response = self.client.post(
            "/api/klingai-image",
            json={"prompt": "a cat", "image_url": "https://src.png", "aspect_ratio": "1:1"},
        )

        self.assertEqual(response.json(), {"imageUrl": "https://img/1.png"})
        self.klingai.generate_image.assert_called_once_with(
            "a cat", "https://src.png", {"aspect_ratio": "1:1"}
        )

    def test_klingai_video(self):
        self.klingai.generate_video.return_value = "https://vid/1.mp4"

        response = self.client.post("/api/klingai", json={"prompt": "waves", "duration": 5})

        self.assertEqual(response.json(), {"videoUrl": "https://vid/1.mp4"})
        self.klingai.generate_video.assert_called_once_with("waves", {"duration": 5})

    def test_seedream_and_runware(self):
        self.seedream.generate_image.return_value = "https://seedream/1"
        self.runware.generate_image.return_value = "https://runware/1"

        seedream = self.client.post("/api/seedream", json={"prompt": "a boat", "guidance": 7})
        runware = self.client.post("/api/runware", json={"prompt": "a tree"})

        self.assertEqual(seedream.json(), {"imageUrl": "https://seedream/1"})
        self.assertEqual(runware.json(), {"imageUrl": "https://runware/1"})
        self.seedream.generate_image.assert_called_once_with("a boat", {"guidance": 7})

    @patch("backend.routes.gemini.call_predict", return_value="sad")
    def test_gemini(self, mock_predict):
        response = self.client.post("/api/gemini", json={"prompt": "opposite of happy"})

        self.assertEqual(response.json(), {"text": "sad"})
        self.assertEqual(mock_predict.call_args.kwargs["api_key"], "gemini-key")

    @patch("backend.routes.realtime.fetch_realtime_report")
    def test_ga_realtime(self, mock_fetch):
        mock_fetch.return_value = {
            "activeUsers": 3,
            "eventCount": 9,
            "events": [{"name": "page_view", "active": 3, "count": 9}],
        }

        response = self.client.get("/api/ga-realtime")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["activeUsers"], 3)
        mock_fetch.assert_called_once_with(self.settings)

    def test_ga_realtime_requires_configuration(self):
        self.settings = Settings(GA_PROPERTY_ID="123")

        response = self.client.get("/api/ga-realtime")

        self.assertEqual(response.status_code, 400)
        self.assertIn("GA_PROPERTY_ID", response.json()["error"])

    def test_wrong_method_is_not_allowed(self):
        response = self.client.get("/api/dalle3")

        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.headers["allow"], "POST")

    def test_unexpected_error(self):
        self.runware.generate_image.side_effect = RuntimeError("boom")
        client = TestClient(self.app, raise_server_exceptions=False)

        response = client.post("/api/runware", json={"prompt": "a tree"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Unexpected server error"})


if __name__ == "__main__":
    unittest.main()
