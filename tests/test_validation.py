"""Tests for request validation."""

import pytest

from story_engine.models import (
    MOCKED_PROVIDER,
    AudioGenerationRequest,
    ImageGenerationRequest,
    ProviderConfig,
    TextGenerationRequest,
)
from story_engine.providers import MockedProvider
from story_engine.registry import ProviderRegistry
from story_engine.validation import MAX_PROMPT_LENGTH, validate_request


def _text(**kw) -> TextGenerationRequest:
    return TextGenerationRequest(prompt=kw.pop("prompt", "Write a dragon story"), **kw)


class TestPrompt:
    @pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
    def test_blank_prompt_rejected(self, registry, prompt) -> None:
        result = validate_request(_text(prompt=prompt), "text", registry)
        assert result.is_valid is False
        assert result.errors

    def test_long_prompt_rejected(self, registry) -> None:
        result = validate_request(_text(prompt="x" * (MAX_PROMPT_LENGTH + 1)), "text", registry)
        assert not result.is_valid
        assert "at most" in result.errors[0]

    def test_prompt_at_limit_accepted(self, registry) -> None:
        assert validate_request(_text(prompt="x" * MAX_PROMPT_LENGTH), "text", registry).is_valid

    def test_short_prompt_is_a_warning(self, registry) -> None:
        result = validate_request(_text(prompt="Dragons"), "text", registry)
        assert result.is_valid
        assert result.warnings


class TestParameters:
    @pytest.mark.parametrize("temperature", [-0.1, 1.5])
    def test_temperature_range(self, registry, temperature) -> None:
        result = validate_request(_text(temperature=temperature), "text", registry)
        assert not result.is_valid

    @pytest.mark.parametrize("temperature", [0, 0.5, 1])
    def test_temperature_bounds_inclusive(self, registry, temperature) -> None:
        assert validate_request(_text(temperature=temperature), "text", registry).is_valid

    @pytest.mark.parametrize("max_tokens", [0, -5])
    def test_max_tokens_positive(self, registry, max_tokens) -> None:
        assert not validate_request(_text(max_tokens=max_tokens), "text", registry).is_valid

    def test_length_closed_set(self, registry) -> None:
        assert validate_request(_text(length="medium"), "text", registry).is_valid
        assert not validate_request(_text(length="epic"), "text", registry).is_valid

    def test_choice_count_at_least_one(self, registry) -> None:
        assert not validate_request(_text(choice_count=0), "text", registry).is_valid

    def test_image_enums(self, registry) -> None:
        ok = ImageGenerationRequest(
            prompt="A misty forest", aspect_ratio="16:9", quality="hd", size="large",
        )
        assert validate_request(ok, "image", registry).is_valid
        bad = ImageGenerationRequest(prompt="A misty forest", aspect_ratio="2:1", size="huge")
        result = validate_request(bad, "image", registry)
        assert len(result.errors) == 2

    def test_audio_enums_and_speed(self, registry) -> None:
        bad = AudioGenerationRequest(
            prompt="A calm narration", audio_format="flac", audio_quality="ultra", speed=0,
        )
        result = validate_request(bad, "audio", registry)
        assert len(result.errors) == 3

    def test_collects_every_error(self, registry) -> None:
        result = validate_request(_text(prompt="", temperature=3, max_tokens=0), "text", registry)
        assert len(result.errors) == 3


class TestProvider:
    def test_unknown_provider(self, registry) -> None:
        result = validate_request(_text(provider="nope"), "text", registry)
        assert result.errors == ["Unknown provider: nope"]

    def test_disabled_provider(self) -> None:
        reg = ProviderRegistry()
        reg.register(ProviderConfig(provider=MOCKED_PROVIDER, enabled=False), MockedProvider())
        reg.freeze()
        result = validate_request(_text(provider=MOCKED_PROVIDER), "text", reg)
        assert result.errors == ["Provider mocked is disabled"]

    def test_provider_without_capability(self) -> None:
        reg = ProviderRegistry()
        reg.register(
            ProviderConfig(provider="words", capabilities=("text",)), MockedProvider(),
        )
        reg.freeze()
        request = ImageGenerationRequest(prompt="A misty forest", provider="words")
        result = validate_request(request, "image", reg)
        assert "does not support image" in result.errors[0]

    def test_no_provider_is_fine(self, registry) -> None:
        assert validate_request(_text(), "text", registry).is_valid
