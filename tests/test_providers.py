"""Tests for the provider adapters — MockedProvider and HttpTextProvider."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from story_engine.providers import HttpTextProvider, MockedProvider, ProviderError
from story_engine.providers.mocked import (
    DEFAULT_AUDIO_URL,
    DEFAULT_IMAGE_URL,
    MODELS,
    OPENING_SEGMENT,
)


# ---------------------------------------------------------------------------
# MockedProvider
# ---------------------------------------------------------------------------

class TestMockedProvider:
    @pytest.fixture
    def provider(self) -> MockedProvider:
        return MockedProvider()

    async def test_opening(self, provider) -> None:
        assert await provider.generate_text("Write a dragon story") == OPENING_SEGMENT["content"]

    async def test_continue(self, provider) -> None:
        text = await provider.generate_text("Please continue")
        assert text.startswith(OPENING_SEGMENT["content"])
        assert text.endswith("new exciting developments...")

    async def test_choices_are_json(self, provider) -> None:
        data = json.loads(await provider.generate_text("Generate choices"))
        assert len(data) == 4
        assert {"text", "description", "type"} <= set(data[0])

    async def test_keywords_ignore_accents(self, provider) -> None:
        assert (await provider.generate_text("CHOÍCE")).startswith("[")

    @pytest.mark.parametrize("prompt,suffix", [
        ("A misty forest", "mock-forest-image.jpg"),
        ("A character portrait", "mock-character-image.jpg"),
    ])
    async def test_image_by_keyword(self, provider, prompt, suffix) -> None:
        assert (await provider.generate_image(prompt)).endswith(suffix)

    async def test_image_default(self, provider) -> None:
        assert await provider.generate_image("A castle") == DEFAULT_IMAGE_URL

    async def test_audio(self, provider) -> None:
        assert (await provider.generate_audio("dramatic")).endswith("mock-dramatic-audio.mp3")
        assert await provider.generate_audio("a song") == DEFAULT_AUDIO_URL

    async def test_models_and_cost(self, provider) -> None:
        assert await provider.get_models() == MODELS
        assert await provider.estimate_cost(100, 100) == pytest.approx(0.2)
        assert await provider.is_available() is True

    async def test_moderation(self, provider) -> None:
        flagged = await provider.moderate_content("an inappropriate line")
        assert flagged.flagged and flagged.categories == ["mock-violation"]
        assert (await provider.moderate_content("a kind line")).flagged is False


# ---------------------------------------------------------------------------
# HttpTextProvider
# ---------------------------------------------------------------------------

def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


class TestHttpTextProviderKoboldCpp:
    @pytest.fixture
    def provider(self) -> HttpTextProvider:
        return HttpTextProvider(name="local", base_url="http://localhost:5001/")

    async def test_happy_path(self, provider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "A dark tavern."}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await provider.generate_text("Describe the tavern.", max_tokens=50, temperature=0.5)
        assert result == "A dark tavern."
        url = mock_post.call_args[0][0]
        body = mock_post.call_args[1]["json"]
        assert url == "http://localhost:5001/api/v1/generate"
        assert body == {"prompt": "Describe the tavern.", "max_length": 50, "temperature": 0.5}

    async def test_no_auth_header_without_key(self, provider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"results": [{"text": "ok"}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            await provider.generate_text("x")
        assert "Authorization" not in mock_post.call_args[1]["headers"]

    async def test_bad_shape(self, provider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"unexpected": True}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="Unexpected response format"):
                await provider.generate_text("x")

    async def test_http_error(self, provider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="HTTP 503"):
                await provider.generate_text("x")

    async def test_connect_error(self, provider) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="Cannot connect"):
                await provider.generate_text("x")

    async def test_timeout(self, provider) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="timed out"):
                await provider.generate_text("x")

    async def test_probe(self, provider) -> None:
        mock_get = AsyncMock(return_value=_mock_response({"result": "llama"}))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await provider.is_available() is True
        assert mock_get.call_args[0][0] == "http://localhost:5001/api/v1/model"

    async def test_probe_failure(self, provider) -> None:
        mock_get = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await provider.is_available() is False

    async def test_media_unsupported(self, provider) -> None:
        with pytest.raises(ProviderError):
            await provider.generate_image("a forest")
        with pytest.raises(ProviderError):
            await provider.generate_audio("a song")
        with pytest.raises(ProviderError):
            await provider.moderate_content("anything")


class TestHttpTextProviderOpenAI:
    @pytest.fixture
    def provider(self) -> HttpTextProvider:
        return HttpTextProvider(
            name="local", base_url="http://localhost:8080", api_key="sk-test",
            wire_format="openai", model="llama-3", cost_per_token=0.0001,
        )

    async def test_request_shape(self, provider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": [{"text": "Hi."}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await provider.generate_text("Say hi", max_tokens=10) == "Hi."
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/completions"
        assert mock_post.call_args[1]["json"] == {"prompt": "Say hi", "model": "llama-3", "max_tokens": 10}
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer sk-test"

    async def test_models_listed(self, provider) -> None:
        mock_get = AsyncMock(return_value=_mock_response({"data": [{"id": "llama-3"}, {"id": "qwen"}]}))
        with patch("httpx.AsyncClient.get", mock_get):
            assert await provider.get_models() == ["llama-3", "qwen"]

    async def test_cost(self, provider) -> None:
        assert await provider.estimate_cost(1000, 1000) == pytest.approx(0.2)
