"""Mocked provider — deterministic canned responses, no network calls.

Responses are picked from the prompt by keyword so that tests and local
development get reproducible output:

    text   "choice" in prompt   → JSON array of four choices
           "continue" in prompt → opening segment + continuation line
           otherwise            → opening segment
    image  "forest" / "character" select a themed URL, otherwise a default
    audio  "dramatic" / "calm" select a themed URL, otherwise a default
"""

from __future__ import annotations

import asyncio
import json
import logging
import unicodedata

from story_engine.models import MOCKED_PROVIDER, ModerationResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "test-model-v1"
COST_PER_TOKEN = 0.001
MODELS = ["test-model-v1", "test-model-v2", "mock-gpt-4", "mock-gemini", "mock-claude"]

CONTINUATION = "\n\nThe story continues with new exciting developments..."

OPENING_SEGMENT: dict = {
    "content": (
        "In the kingdom of Eldoria, where magic ran through snowbound peaks and "
        "enchanted forests, Princess Lyra found an ancient scroll hidden in the "
        "royal library. It told of the Crystal of Harmony, a lost artifact able "
        "to end the long war between the magical kingdoms.\n\n"
        "Lyra resolved to find it. She gathered three companions: Kael, an elven "
        "swordsman; Mira, a mage versed in wards; and Thorin, a dwarf who knew "
        "the old mountain roads."
    ),
    "choices": [
        {"text": "Depart immediately for the Dark Forest",
         "description": "Follow the first clue from the scroll without delay",
         "type": "action"},
        {"text": "Gather more information in the library",
         "description": "Research the Crystal of Harmony before departing",
         "type": "exploration"},
        {"text": "Consult the kingdom's oracle",
         "description": "Seek mystical guidance before the journey begins",
         "type": "dialogue"},
        {"text": "Train with the companions",
         "description": "Spend time preparing and strengthening the team",
         "type": "action"},
    ],
}

IMAGE_URLS = {
    "forest": "https://example.com/mock-forest-image.jpg",
    "character": "https://example.com/mock-character-image.jpg",
}
DEFAULT_IMAGE_URL = "https://example.com/mock-story-image.jpg"

AUDIO_URLS = {
    "dramatic": "https://example.com/mock-dramatic-audio.mp3",
    "calm": "https://example.com/mock-calm-audio.mp3",
}
DEFAULT_AUDIO_URL = "https://example.com/mock-story-audio.mp3"

_FLAG_WORDS = ("inappropriate", "harmful")


def _normalise(text: str) -> str:
    """Lower-case and strip accents so keyword checks ignore diacritics."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _pick(prompt: str, table: dict[str, str], default: str) -> str:
    normalised = _normalise(prompt)
    for keyword, url in table.items():
        if keyword in normalised:
            return url
    return default


class MockedProvider:
    """Deterministic stand-in for a real AI backend.

    Args:
        delay: Seconds to sleep before every response. Zero by default;
               tests raise it to exercise orchestrator timeouts.
    """

    name = MOCKED_PROVIDER

    def __init__(self, delay: float = 0.0) -> None:
        self._delay = delay

    async def _simulate_delay(self) -> None:
        if self._delay > 0:
            await asyncio.sleep(self._delay)

    async def generate_text(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> str:
        await self._simulate_delay()
        logger.debug("mocked text prompt_len=%d model=%s", len(prompt), model or DEFAULT_MODEL)
        normalised = _normalise(prompt)
        opening = OPENING_SEGMENT
        if "choice" in normalised:
            return json.dumps(opening["choices"])
        if "continue" in normalised:
            return opening["content"] + CONTINUATION
        return opening["content"]

    async def generate_image(
        self,
        prompt: str,
        *,
        size: str | None = None,
        style: str | None = None,
        quality: str | None = None,
        model: str | None = None,
    ) -> str:
        await self._simulate_delay()
        return _pick(prompt, IMAGE_URLS, DEFAULT_IMAGE_URL)

    async def generate_audio(
        self,
        prompt: str,
        *,
        voice: str | None = None,
        speed: float | None = None,
        audio_format: str | None = None,
        model: str | None = None,
    ) -> str:
        await self._simulate_delay()
        return _pick(prompt, AUDIO_URLS, DEFAULT_AUDIO_URL)

    async def is_available(self) -> bool:
        await self._simulate_delay()
        return True

    async def get_models(self) -> list[str]:
        return list(MODELS)

    async def estimate_cost(
        self, input_tokens: int, output_tokens: int, model: str | None = None,
    ) -> float:
        return (input_tokens + output_tokens) * COST_PER_TOKEN

    async def moderate_content(self, content: str) -> ModerationResult:
        flagged = any(word in content.lower() for word in _FLAG_WORDS)
        return ModerationResult(
            flagged=flagged,
            categories=["mock-violation"] if flagged else [],
            confidence=0.95 if flagged else 0.05,
        )
