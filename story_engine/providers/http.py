"""HTTP text provider — a self-hosted text-completion backend.

Supported wire formats:

    "koboldcpp"  — POST /api/v1/generate  {"prompt", "max_length", "temperature"}
                   Response: {"results": [{"text": "..."}]}
                   Probe:    GET /api/v1/model
    "openai"     — POST /v1/completions   {"model", "prompt", "max_tokens", "temperature"}
                   Response: {"choices": [{"text": "..."}]}
                   Probe:    GET /v1/models

Only text generation is served; image and audio requests raise
`ProviderError`. Connection, status and timeout failures are all reported
as `ProviderError` so the orchestrator sees a single failure type.
"""

from __future__ import annotations

import logging
from typing import Literal

import httpx

from story_engine.models import ModerationResult

from .base import ProviderError

logger = logging.getLogger(__name__)

WireFormat = Literal["koboldcpp", "openai"]


class HttpTextProvider:
    """Async httpx client for a local completion server.

    Args:
        name:           Registry identifier, e.g. "local".
        base_url:       Backend root, e.g. "http://localhost:5001".
        api_key:        Bearer token, or empty string if not required.
        wire_format:    "koboldcpp" (default) or "openai".
        model:          Default model; sent only in the openai format.
        cost_per_token: Published rate used by estimate_cost.
        timeout:        HTTP timeout in seconds.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str = "",
        wire_format: WireFormat = "koboldcpp",
        model: str = "",
        cost_per_token: float = 0.0,
        timeout: float = 120.0,
    ) -> None:
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._format = wire_format
        self._model = model
        self._cost_per_token = cost_per_token
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self, prompt: str, max_tokens: int | None, temperature: float | None, model: str | None,
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            body: dict = {"prompt": prompt}
            if model or self._model:
                body["model"] = model or self._model
            if max_tokens is not None:
                body["max_tokens"] = max_tokens
            if temperature is not None:
                body["temperature"] = temperature
            return f"{self._base_url}/v1/completions", body

        body = {"prompt": prompt}
        if max_tokens is not None:
            body["max_length"] = max_tokens
        if temperature is not None:
            body["temperature"] = temperature
        return f"{self._base_url}/api/v1/generate", body

    def _parse_response(self, data: dict) -> str:
        key = "choices" if self._format == "openai" else "results"
        items = data.get(key)
        if not items or "text" not in items[0]:
            raise ProviderError(f"Unexpected response format from {self._format} backend")
        return items[0]["text"]

    def _probe_url(self) -> str:
        if self._format == "openai":
            return f"{self._base_url}/v1/models"
        return f"{self._base_url}/api/v1/model"

    async def generate_text(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> str:
        url, body = self._build_request(prompt, max_tokens, temperature, model)
        logger.debug("http provider=%s url=%s prompt_len=%d", self.name, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise ProviderError(f"Cannot connect to backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"Backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"Backend timed out after {self._timeout}s") from e

        text = self._parse_response(resp.json())
        logger.debug("http provider=%s response_len=%d", self.name, len(text))
        return text

    async def generate_image(self, prompt: str, **options) -> str:
        raise ProviderError(f"Provider {self.name} does not support image generation")

    async def generate_audio(self, prompt: str, **options) -> str:
        raise ProviderError(f"Provider {self.name} does not support audio generation")

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(self._probe_url(), headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("probe failed provider=%s: %s", self.name, e)
            return False
        return True

    async def get_models(self) -> list[str]:
        if self._format != "openai":
            return [self._model] if self._model else []
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(self._probe_url(), headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderError(f"Cannot list models at {self._base_url}") from e
        return [m["id"] for m in resp.json().get("data", []) if "id" in m]

    async def estimate_cost(
        self, input_tokens: int, output_tokens: int, model: str | None = None,
    ) -> float:
        return (input_tokens + output_tokens) * self._cost_per_token

    async def moderate_content(self, content: str) -> ModerationResult:
        raise ProviderError(f"Provider {self.name} does not offer moderation")
