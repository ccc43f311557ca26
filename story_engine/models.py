"""Core generation models.

Every orchestrator operation, provider adapter and API endpoint speaks in
these types. Pydantic is used for validation and serialisation at every data
boundary; the closed value sets for enumerated request fields are kept as
plain tuples so that the request validator can report violations as errors
instead of having pydantic reject the request outright.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from story_engine.errors import ErrorCode

GenerationKind = Literal["text", "image", "audio"]

GENERATION_KINDS: tuple[str, ...] = ("text", "image", "audio")

LENGTHS = ("short", "medium", "long")
ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3")
IMAGE_QUALITIES = ("standard", "hd")
IMAGE_SIZES = ("small", "medium", "large")
AUDIO_FORMATS = ("mp3", "wav", "ogg")
AUDIO_QUALITIES = ("standard", "high")

MOCKED_PROVIDER = "mocked"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChoiceType(str, Enum):
    NARRATIVE = "narrative"
    DIALOGUE = "dialogue"
    ACTION = "action"
    MORAL = "moral"
    STRATEGIC = "strategic"
    EXPLORATION = "exploration"
    RELATIONSHIP = "relationship"
    SKILL_CHECK = "skill_check"
    INVENTORY = "inventory"
    ENDING = "ending"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class GenerationRequest(BaseModel):
    """Fields shared by every generation request variant."""

    prompt: str
    context: str | None = None
    story_id: str | None = None
    user_id: str | None = None
    parent_content_id: str | None = None
    genre: str | None = None
    tone: str | None = None
    length: str | None = None  # one of LENGTHS
    temperature: float | None = None
    max_tokens: int | None = None
    model: str | None = None
    provider: str | None = None  # None → best available provider


class TextGenerationRequest(GenerationRequest):
    kind: Literal["text"] = "text"
    include_choices: bool = False
    choice_count: int | None = None
    choice_types: list[ChoiceType] | None = None


class ImageGenerationRequest(GenerationRequest):
    kind: Literal["image"] = "image"
    style: str | None = None
    aspect_ratio: str | None = None  # one of ASPECT_RATIOS
    quality: str | None = None       # one of IMAGE_QUALITIES
    size: str | None = None          # one of IMAGE_SIZES


class AudioGenerationRequest(GenerationRequest):
    kind: Literal["audio"] = "audio"
    voice: str | None = None
    speed: float | None = None
    audio_format: str | None = None   # one of AUDIO_FORMATS
    audio_quality: str | None = None  # one of AUDIO_QUALITIES
    duration: float | None = None


class ChoiceGenerationRequest(TextGenerationRequest):
    """A text request whose output is parsed into reader choices.

    `prompt` may be left empty; the choice prompt is built from
    `current_content`.
    """

    prompt: str = ""
    current_content: str = ""
    choice_count: int = 4


class CombinedGenerationRequest(BaseModel):
    kind: Literal["combined"] = "combined"
    text: TextGenerationRequest
    image: ImageGenerationRequest | None = None
    audio: AudioGenerationRequest | None = None


AnyGenerationRequest = (
    TextGenerationRequest | ImageGenerationRequest | AudioGenerationRequest
)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class Choice(BaseModel):
    """A branch option presented to the reader."""

    text: str
    description: str = ""
    type: ChoiceType = ChoiceType.NARRATIVE
    consequences: str | None = None


class GenerationResult(BaseModel):
    """Normalised outcome of one generation call.

    `success` and `error` are mutually exclusive: a successful result never
    carries an error message and a failed one always does.
    """

    success: bool
    provider: str | None = None
    generation_time: float = Field(default=0.0, ge=0)  # seconds
    content: str | None = None
    image_url: str | None = None
    audio_url: str | None = None
    choices: list[Choice] | None = None
    tokens_used: int = 0
    cost: float = 0.0
    model: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None  # set on failures only
    breakdown: GenerationBreakdown | None = None

    @model_validator(mode="after")
    def _success_xor_error(self) -> GenerationResult:
        if self.success and self.error is not None:
            raise ValueError("successful result must not carry an error")
        if not self.success and not self.error:
            raise ValueError("failed result must carry an error message")
        return self

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        code: ErrorCode = ErrorCode.AI_PROVIDER_ERROR,
        provider: str | None = None,
        generation_time: float = 0.0,
        tokens_used: int = 0,
        cost: float = 0.0,
    ) -> GenerationResult:
        return cls(
            success=False, error=error, error_code=code, provider=provider,
            generation_time=max(generation_time, 0.0), tokens_used=tokens_used, cost=cost,
        )


class GenerationBreakdown(BaseModel):
    """Per-part results of a combined generation. Absent parts stay None."""

    text_generation: GenerationResult
    image_generation: GenerationResult | None = None
    audio_generation: GenerationResult | None = None


GenerationResult.model_rebuild()


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class ProviderConfig(BaseModel):
    """Static configuration for one provider. Frozen once loaded."""

    model_config = ConfigDict(frozen=True)

    provider: str
    api_key: str = ""
    base_url: str | None = None
    model: str = ""
    max_tokens: int = 4000
    temperature: float = 0.7
    enabled: bool = True
    rate_limit: int = 0  # requests per minute; 0 = unlimited
    cost_per_token: float = 0.001
    timeout: float = 30.0  # seconds
    capabilities: tuple[str, ...] = GENERATION_KINDS
    supported_models: tuple[str, ...] = ()

    def supports(self, kind: str) -> bool:
        return kind in self.capabilities

    def redacted(self) -> dict:
        """Dump for display with the credential masked."""
        data = self.model_dump()
        if data["api_key"]:
            data["api_key"] = "***"
        return data


class ProviderStatus(BaseModel):
    """Last measured health of a provider. Replaced whole on every probe."""

    model_config = ConfigDict(frozen=True)

    provider: str
    is_available: bool
    response_time: float = 0.0  # milliseconds
    error_rate: float = 0.0
    current_load: float = 0.0
    rate_limit_remaining: int | None = None
    last_checked: datetime = Field(default_factory=_utcnow)


class ProviderRequirements(BaseModel):
    max_response_time: float | None = None  # milliseconds
    max_cost: float | None = None
    min_quality: float | None = None  # 0–1, compared against 1 - error_rate


class ProviderTestResult(BaseModel):
    success: bool
    response_time: float  # milliseconds
    error: str | None = None


# ---------------------------------------------------------------------------
# Cost, moderation, validation, usage
# ---------------------------------------------------------------------------

class CostBreakdown(BaseModel):
    input_cost: float
    output_cost: float
    total_tokens: int


class CostEstimate(BaseModel):
    provider: str
    model: str | None = None
    estimated_cost: float
    breakdown: CostBreakdown


class ModerationResult(BaseModel):
    flagged: bool
    categories: list[str] = Field(default_factory=list)
    confidence: float


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DailyUsage(BaseModel):
    date: str  # ISO date, UTC
    requests: int = 0
    tokens: int = 0
    cost: float = 0.0


class UsageMetrics(BaseModel):
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    average_response_time: float = 0.0  # seconds
    requests_by_type: dict[str, int] = Field(default_factory=dict)
    requests_by_provider: dict[str, int] = Field(default_factory=dict)
    daily_usage: list[DailyUsage] = Field(default_factory=list)
