"""Request validation. Pure: never calls a provider."""

from __future__ import annotations

from story_engine.models import (
    ASPECT_RATIOS,
    AUDIO_FORMATS,
    AUDIO_QUALITIES,
    IMAGE_QUALITIES,
    IMAGE_SIZES,
    LENGTHS,
    GenerationRequest,
    ValidationResult,
)
from story_engine.registry import ProviderRegistry

MAX_PROMPT_LENGTH = 5000
SHORT_PROMPT_LENGTH = 10


def _check_enum(errors: list[str], field: str, value: str | None, allowed: tuple[str, ...]) -> None:
    if value is not None and value not in allowed:
        errors.append(f"{field} must be one of: {', '.join(allowed)}")


def validate_request(
    request: GenerationRequest, kind: str, registry: ProviderRegistry,
) -> ValidationResult:
    """Check `request` as a `kind` ("text", "image" or "audio") request."""
    errors: list[str] = []
    warnings: list[str] = []

    prompt = request.prompt or ""
    if not prompt.strip():
        errors.append("Prompt is required")
    elif len(prompt) > MAX_PROMPT_LENGTH:
        errors.append(f"Prompt must be at most {MAX_PROMPT_LENGTH} characters")
    elif len(prompt.strip()) < SHORT_PROMPT_LENGTH:
        warnings.append(f"Prompt is shorter than {SHORT_PROMPT_LENGTH} characters")

    if request.temperature is not None and not 0 <= request.temperature <= 1:
        errors.append("Temperature must be between 0 and 1")
    if request.max_tokens is not None and request.max_tokens <= 0:
        errors.append("max_tokens must be positive")

    _check_enum(errors, "length", request.length, LENGTHS)
    if kind == "image":
        _check_enum(errors, "aspect_ratio", getattr(request, "aspect_ratio", None), ASPECT_RATIOS)
        _check_enum(errors, "quality", getattr(request, "quality", None), IMAGE_QUALITIES)
        _check_enum(errors, "size", getattr(request, "size", None), IMAGE_SIZES)
    elif kind == "audio":
        _check_enum(errors, "audio_format", getattr(request, "audio_format", None), AUDIO_FORMATS)
        _check_enum(errors, "audio_quality", getattr(request, "audio_quality", None), AUDIO_QUALITIES)
        speed = getattr(request, "speed", None)
        if speed is not None and speed <= 0:
            errors.append("speed must be positive")
    elif kind == "text":
        count = getattr(request, "choice_count", None)
        if count is not None and count < 1:
            errors.append("choice_count must be at least 1")
    else:
        errors.append(f"Unknown generation kind: {kind}")

    if request.provider is not None:
        config = registry.get_config(request.provider)
        if config is None:
            errors.append(f"Unknown provider: {request.provider}")
        elif not config.enabled:
            errors.append(f"Provider {request.provider} is disabled")
        elif not config.supports(kind):
            errors.append(f"Provider {request.provider} does not support {kind} generation")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
