"""Provider protocol — every AI backend implementation must match it.

The orchestrator only ever talks to providers through this interface. A
provider raises `ProviderError` (or anything else) on failure; the
orchestrator turns every exception into a failed `GenerationResult`, so
implementations do not need to catch their own errors.
"""

from __future__ import annotations

from typing import Protocol

from story_engine.models import ModerationResult


class AIProvider(Protocol):
    name: str

    async def generate_text(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> str: ...

    async def generate_image(
        self,
        prompt: str,
        *,
        size: str | None = None,
        style: str | None = None,
        quality: str | None = None,
        model: str | None = None,
    ) -> str: ...

    async def generate_audio(
        self,
        prompt: str,
        *,
        voice: str | None = None,
        speed: float | None = None,
        audio_format: str | None = None,
        model: str | None = None,
    ) -> str: ...

    async def is_available(self) -> bool: ...

    async def get_models(self) -> list[str]: ...

    async def estimate_cost(
        self, input_tokens: int, output_tokens: int, model: str | None = None,
    ) -> float: ...

    async def moderate_content(self, content: str) -> ModerationResult: ...


class ProviderError(RuntimeError):
    """Raised when a provider cannot serve a request."""
