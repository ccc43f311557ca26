"""Generation orchestrator — routes requests to AI providers.

Single-kind flow (generate_text / generate_image / generate_audio):
  1. Validate the request; invalid → failed result, no provider call.
  2. Resolve the provider: the one named on the request, otherwise the
     best-scoring enabled provider (or the configured default when
     fallback selection is off). None → failed result.
  3. Refuse if the cached status marks it unavailable or its per-minute
     rate limit is used up. An unavailable status older than the
     health-check interval is probed again before it is trusted.
  4. Call the provider under `asyncio.wait_for`; a timeout cancels the
     call. Any provider exception becomes a failed result. Single attempt.
  5. Normalise: tokens are estimated at four characters each, cost comes
     from the provider's own estimate_cost, generation_time is wall clock.
  6. Fold the outcome into the provider's cached status and the usage
     metrics.

Combined generation runs text first; image and audio run concurrently only
after text succeeds. Choice generation is a text call with a dedicated
prompt whose output is parsed into Choice objects.

Shared state is limited to the provider-status cache, the rate-limit
windows and the usage tracker. Status entries are frozen models replaced
by a single dict assignment, so concurrent probes never leave a partially
written entry; the last write wins.
`run_health_checks` re-probes every provider on a fixed interval; the API
runs it for the lifetime of the app.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import deque
from datetime import datetime, timezone

from story_engine.choices import ensure_type_coverage, parse_choices
from story_engine.config import Settings
from story_engine.errors import ErrorCode, invalid_input, unexpected_error
from story_engine.metrics import UsageTracker
from story_engine.models import (
    AnyGenerationRequest,
    AudioGenerationRequest,
    Choice,
    ChoiceGenerationRequest,
    ChoiceType,
    CombinedGenerationRequest,
    CostBreakdown,
    CostEstimate,
    GenerationBreakdown,
    GenerationRequest,
    GenerationResult,
    ImageGenerationRequest,
    ModerationResult,
    ProviderConfig,
    ProviderRequirements,
    ProviderStatus,
    ProviderTestResult,
    TextGenerationRequest,
    UsageMetrics,
    ValidationResult,
)
from story_engine.prompts import PromptError, build_choice_prompt, build_story_prompt
from story_engine.providers import AIProvider
from story_engine.registry import ProviderRegistry
from story_engine.validation import validate_request

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
ERROR_RATE_ALPHA = 0.2
RATE_WINDOW_SECONDS = 60.0

CHOICE_MAX_TOKENS = 1000
CHOICE_TEMPERATURE = 0.8
CHOICE_CONTEXT_CHARS = 3000

# Neutral assumptions for providers that have never been probed.
DEFAULT_RESPONSE_TIME_MS = 1000.0

_MODERATION_RE = re.compile(r"\b(spam|hate|violence|explicit)\b", re.IGNORECASE)


def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


def _score(status: ProviderStatus, cost_1k: float) -> float:
    """Lower is better. Weights are a starting point, not a tuned model."""
    return (
        0.5 * status.response_time / 1000
        + 0.3 * status.error_rate * 10
        + 0.2 * cost_1k
    )


class Orchestrator:
    """Routes generation requests across the providers in a registry.

    Args:
        registry: Frozen provider registry.
        settings: Process settings; defaults apply when omitted.
        tracker:  Usage tracker; a private one is created when omitted.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        settings: Settings | None = None,
        tracker: UsageTracker | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings or Settings()
        self._tracker = tracker or UsageTracker()
        self._statuses: dict[str, ProviderStatus] = {}
        self._in_flight: dict[str, int] = {}
        self._calls: dict[str, deque[float]] = {}

    # ── lookups ──────────────────────────────────────────

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def settings(self) -> Settings:
        return self._settings

    def validate_request(self, request: GenerationRequest, kind: str) -> ValidationResult:
        return validate_request(request, kind, self._registry)

    def is_provider_supported(self, provider: str) -> bool:
        return self._registry.is_provider_supported(provider)

    def get_provider_config(self, provider: str) -> ProviderConfig | None:
        return self._registry.get_config(provider)

    async def get_available_models(self, provider: str) -> list[str]:
        return await self._registry.get_available_models(provider)

    def get_provider_status(self, provider: str) -> ProviderStatus | None:
        """Last cached status, without probing."""
        return self._statuses.get(provider)

    def get_usage_metrics(self) -> UsageMetrics:
        return self._tracker.snapshot()

    # ── single-kind generation ───────────────────────────

    async def generate_text(self, request: TextGenerationRequest) -> GenerationResult:
        result = await self._generate("text", request)
        if result.success and request.include_choices and result.content:
            choices = await self.generate_choices(ChoiceGenerationRequest(
                current_content=result.content,
                choice_count=request.choice_count or 4,
                choice_types=request.choice_types,
                genre=request.genre,
                story_id=request.story_id,
                user_id=request.user_id,
                provider=result.provider,
            ))
            result = result.model_copy(update={"choices": choices})
        return result

    async def generate_image(self, request: ImageGenerationRequest) -> GenerationResult:
        return await self._generate("image", request)

    async def generate_audio(self, request: AudioGenerationRequest) -> GenerationResult:
        return await self._generate("audio", request)

    async def _generate(self, kind: str, request: AnyGenerationRequest) -> GenerationResult:
        start = time.perf_counter()

        def fail(
            error: str,
            provider: str | None,
            code: ErrorCode = ErrorCode.AI_PROVIDER_ERROR,
            **spent,
        ) -> GenerationResult:
            result = GenerationResult.failure(
                error, code=code, provider=provider,
                generation_time=time.perf_counter() - start, **spent,
            )
            self._tracker.record(kind, result)
            return result

        validation = self.validate_request(request, kind)
        if not validation.is_valid:
            return fail(
                f"Invalid request: {', '.join(validation.errors)}",
                request.provider,
                ErrorCode.VALIDATION_ERROR,
            )

        name = request.provider or await self._select_provider(kind)
        if name is None:
            return fail(f"No available provider for {kind}", None)

        config = self._registry.get_config(name)
        if config is None or not config.enabled:
            return fail(f"Provider {name} is not configured or enabled", name)
        status = await self._current_status(name)
        if status is not None and not status.is_available:
            return fail(f"Provider {name} is not available", name)
        if self._rate_limit_remaining(name, config) == 0:
            return fail(f"Provider {name} rate limit exceeded", name)

        provider = self._registry.get(name)
        prompt = self._render_prompt(request)
        if config.rate_limit > 0:
            self._calls.setdefault(name, deque()).append(time.monotonic())
        self._in_flight[name] = self._in_flight.get(name, 0) + 1
        try:
            output = await asyncio.wait_for(
                self._invoke(kind, provider, config, request, prompt),
                timeout=config.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("provider=%s kind=%s timed out after %.1fs", name, kind, config.timeout)
            self._note_outcome(name, ok=False, elapsed=time.perf_counter() - start)
            return fail(f"Provider call timed out after {config.timeout:g}s", name)
        except Exception as e:
            logger.warning("provider=%s kind=%s failed: %s", name, kind, e)
            self._note_outcome(name, ok=False, elapsed=time.perf_counter() - start)
            return fail(str(e) or type(e).__name__, name)
        finally:
            self._in_flight[name] -= 1

        elapsed = time.perf_counter() - start
        self._note_outcome(name, ok=True, elapsed=elapsed)

        input_tokens = estimate_tokens(prompt)
        output_tokens = estimate_tokens(output) if kind == "text" else 0
        cost = 0.0
        if self._settings.enable_cost_tracking:
            cost = await self._cost(provider, config, input_tokens, output_tokens, request.model)

        fields: dict = {"content": output} if kind == "text" else {f"{kind}_url": output}
        result = GenerationResult(
            success=True,
            provider=name,
            model=request.model or config.model or None,
            generation_time=elapsed,
            tokens_used=input_tokens + output_tokens,
            cost=cost,
            **fields,
        )

        if kind == "text" and self._settings.enable_moderation:
            verdict = await self.moderate_content(output, provider=name)
            if verdict.flagged:
                logger.warning("provider=%s output flagged: %s", name, verdict.categories)
                return fail(
                    f"Generated content was flagged by moderation: {', '.join(verdict.categories)}",
                    name,
                    ErrorCode.STORY_GENERATION_FAILED,
                    tokens_used=result.tokens_used,
                    cost=result.cost,
                )

        self._tracker.record(kind, result)
        logger.debug("provider=%s kind=%s ok in %.3fs tokens=%d", name, kind, elapsed, result.tokens_used)
        return result

    def _render_prompt(self, request: AnyGenerationRequest) -> str:
        try:
            return build_story_prompt(
                request.prompt, request.context, request.genre, request.tone, request.length,
            )
        except PromptError as e:
            raise unexpected_error("render_prompt", e) from e

    async def _invoke(
        self,
        kind: str,
        provider: AIProvider,
        config: ProviderConfig,
        request: AnyGenerationRequest,
        prompt: str,
    ) -> str:
        model = request.model or config.model or None
        if isinstance(request, ImageGenerationRequest):
            return await provider.generate_image(
                prompt, size=request.size, style=request.style,
                quality=request.quality, model=model,
            )
        if isinstance(request, AudioGenerationRequest):
            return await provider.generate_audio(
                prompt, voice=request.voice, speed=request.speed,
                audio_format=request.audio_format, model=model,
            )
        return await provider.generate_text(
            prompt,
            max_tokens=request.max_tokens or config.max_tokens,
            temperature=request.temperature if request.temperature is not None else config.temperature,
            model=model,
        )

    # ── composite generation ─────────────────────────────

    async def generate_combined_content(self, request: CombinedGenerationRequest) -> GenerationResult:
        start = time.perf_counter()
        text = await self.generate_text(request.text)
        if not text.success:
            return GenerationResult(
                success=False,
                provider=text.provider,
                error=text.error,
                error_code=text.error_code,
                generation_time=time.perf_counter() - start,
                breakdown=GenerationBreakdown(text_generation=text),
            )

        image, audio = await asyncio.gather(
            self.generate_image(request.image) if request.image else _none(),
            self.generate_audio(request.audio) if request.audio else _none(),
        )
        parts = [r for r in (text, image, audio) if r is not None]
        return GenerationResult(
            success=True,
            provider=text.provider,
            model=text.model,
            content=text.content,
            choices=text.choices,
            image_url=image.image_url if image else None,
            audio_url=audio.audio_url if audio else None,
            tokens_used=sum(r.tokens_used for r in parts),
            cost=sum(r.cost for r in parts),
            generation_time=time.perf_counter() - start,
            breakdown=GenerationBreakdown(
                text_generation=text, image_generation=image, audio_generation=audio,
            ),
        )

    async def generate_choices(self, request: ChoiceGenerationRequest) -> list[Choice]:
        """Generate `choice_count` choices continuing `current_content`.

        Returns an empty list when there is no content to continue or the
        provider call fails. Requested choice types are covered on a best
        effort basis.
        """
        if request.choice_count < 1:
            raise invalid_input("choice_count", request.choice_count, "must be at least 1")
        if not request.current_content.strip():
            return []

        requested = [t.value for t in request.choice_types or []]
        try:
            prompt = build_choice_prompt(
                request.current_content[-CHOICE_CONTEXT_CHARS:],
                request.choice_count,
                requested,
                request.genre,
                [t.value for t in ChoiceType],
            )
        except PromptError as e:
            raise unexpected_error("build_choice_prompt", e) from e

        text_request = TextGenerationRequest(
            **request.model_dump(
                exclude={"kind", "prompt", "current_content", "include_choices", "context"},
            ),
            prompt=prompt,
        ).model_copy(update={
            "max_tokens": request.max_tokens or CHOICE_MAX_TOKENS,
            "temperature": request.temperature if request.temperature is not None else CHOICE_TEMPERATURE,
        })
        result = await self._generate("text", text_request)
        if not result.success or not result.content:
            logger.info("choice generation failed: %s", result.error)
            return []

        choices = parse_choices(result.content, request.choice_count)
        if request.choice_types:
            choices = ensure_type_coverage(choices, list(request.choice_types))
        return choices

    # ── provider selection and health ────────────────────

    async def _select_provider(self, kind: str) -> str | None:
        if self._settings.enable_fallback:
            return await self.get_best_provider(kind)
        default = self._settings.default_provider
        if default in self._registry.enabled_providers(kind):
            return default
        return None

    def _status_or_default(self, name: str) -> ProviderStatus:
        status = self._statuses.get(name)
        if status is None:
            status = ProviderStatus(
                provider=name, is_available=True, response_time=DEFAULT_RESPONSE_TIME_MS,
            )
        return status

    async def _current_status(self, name: str) -> ProviderStatus | None:
        """Cached status; an unavailable entry older than the re-probe interval is probed again."""
        status = self._statuses.get(name)
        if status is not None and not status.is_available and self._is_stale(status):
            logger.info("re-probing provider=%s marked unavailable since %s", name, status.last_checked)
            status = await self.check_provider_status(name)
        return status

    def _is_stale(self, status: ProviderStatus) -> bool:
        age = (datetime.now(timezone.utc) - status.last_checked).total_seconds()
        return age >= self._settings.health_check_interval

    async def get_best_provider(
        self, kind: str, requirements: ProviderRequirements | None = None,
    ) -> str | None:
        """Name of the best enabled provider for `kind`, or None.

        Providers failing any ceiling in `requirements` are excluded; the
        rest are ranked by `_score` with ties broken by name.
        """
        req = requirements or ProviderRequirements()
        ranked: list[tuple[float, str]] = []
        for name in self._registry.enabled_providers(kind):
            status = await self._current_status(name) or self._status_or_default(name)
            if not status.is_available:
                continue
            config = self._registry.get_config(name)
            if self._rate_limit_remaining(name, config) == 0:
                continue
            if req.max_response_time is not None and status.response_time > req.max_response_time:
                continue
            if req.min_quality is not None and 1 - status.error_rate < req.min_quality:
                continue
            cost_1k = await self._cost(self._registry.get(name), config, 500, 500, None)
            if req.max_cost is not None and cost_1k > req.max_cost:
                continue
            ranked.append((_score(status, cost_1k), name))
        if not ranked:
            return None
        return min(ranked)[1]

    async def check_provider_status(self, provider: str) -> ProviderStatus:
        """Probe `provider` and replace its cached status.

        A failing or timed-out probe yields `is_available=False`; it is
        never raised. Unknown providers are reported unavailable and not
        cached.
        """
        config = self._registry.get_config(provider)
        if config is None:
            return ProviderStatus(provider=provider, is_available=False)

        start = time.perf_counter()
        try:
            available = await asyncio.wait_for(
                self._registry.get(provider).is_available(), timeout=config.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("status probe timed out provider=%s", provider)
            available = False
        except Exception as e:
            logger.warning("status probe failed provider=%s: %s", provider, e)
            available = False
        elapsed_ms = (time.perf_counter() - start) * 1000

        previous = self._status_or_default(provider)
        status = ProviderStatus(
            provider=provider,
            is_available=bool(available) and config.enabled,
            response_time=elapsed_ms,
            error_rate=_rolled(previous.error_rate, ok=bool(available)),
            current_load=float(self._in_flight.get(provider, 0)),
            rate_limit_remaining=self._rate_limit_remaining(provider, config),
        )
        self._statuses[provider] = status
        return status

    def _note_outcome(self, name: str, *, ok: bool, elapsed: float) -> None:
        previous = self._status_or_default(name)
        self._statuses[name] = previous.model_copy(update={
            "response_time": elapsed * 1000,
            "error_rate": _rolled(previous.error_rate, ok=ok),
            "current_load": float(self._in_flight.get(name, 0)),
        })

    def _rate_limit_remaining(self, name: str, config: ProviderConfig | None) -> int | None:
        """Calls left in the current window; None when the provider is unlimited."""
        if config is None or config.rate_limit <= 0:
            return None
        window = self._calls.setdefault(name, deque())
        cutoff = time.monotonic() - RATE_WINDOW_SECONDS
        while window and window[0] < cutoff:
            window.popleft()
        return max(config.rate_limit - len(window), 0)

    async def check_all_providers(self) -> list[ProviderStatus]:
        """Probe every registered provider concurrently."""
        names = self._registry.available_providers()
        return list(await asyncio.gather(*(self.check_provider_status(n) for n in names)))

    async def run_health_checks(self, interval: float) -> None:
        """Re-probe every provider each `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            statuses = await self.check_all_providers()
            down = [s.provider for s in statuses if not s.is_available]
            if down:
                logger.warning("health check: unavailable providers %s", down)

    async def test_provider(self, provider: str) -> ProviderTestResult:
        """Probe, then run a tiny text generation when the provider supports text."""
        config = self._registry.get_config(provider)
        if config is None:
            return ProviderTestResult(
                success=False, response_time=0.0, error=f"Provider {provider} not configured",
            )
        start = time.perf_counter()
        status = await self.check_provider_status(provider)
        if not status.is_available:
            return ProviderTestResult(
                success=False,
                response_time=(time.perf_counter() - start) * 1000,
                error=f"Provider {provider} is not available",
            )
        if config.supports("text"):
            try:
                await asyncio.wait_for(
                    self._registry.get(provider).generate_text("Reply with OK.", max_tokens=5),
                    timeout=config.timeout,
                )
            except asyncio.TimeoutError:
                return ProviderTestResult(
                    success=False,
                    response_time=(time.perf_counter() - start) * 1000,
                    error=f"Provider call timed out after {config.timeout:g}s",
                )
            except Exception as e:
                return ProviderTestResult(
                    success=False,
                    response_time=(time.perf_counter() - start) * 1000,
                    error=str(e) or type(e).__name__,
                )
        return ProviderTestResult(success=True, response_time=(time.perf_counter() - start) * 1000)

    # ── cost and moderation ──────────────────────────────

    async def _cost(
        self,
        provider: AIProvider,
        config: ProviderConfig,
        input_tokens: int,
        output_tokens: int,
        model: str | None,
    ) -> float:
        try:
            return await provider.estimate_cost(input_tokens, output_tokens, model or config.model or None)
        except Exception as e:
            logger.warning("estimate_cost failed provider=%s: %s", config.provider, e)
            return (input_tokens + output_tokens) * config.cost_per_token

    async def estimate_cost(
        self,
        provider: str,
        input_tokens: int,
        output_tokens: int,
        model: str | None = None,
    ) -> CostEstimate:
        """Price a call of the given size. Raises DomainError for bad arguments."""
        if input_tokens < 0:
            raise invalid_input("input_tokens", input_tokens, "must be non-negative")
        if output_tokens < 0:
            raise invalid_input("output_tokens", output_tokens, "must be non-negative")
        impl = self._registry.get(provider)
        config = self._registry.get_config(provider)
        input_cost = await self._cost(impl, config, input_tokens, 0, model)
        output_cost = await self._cost(impl, config, 0, output_tokens, model)
        return CostEstimate(
            provider=provider,
            model=model or config.model or None,
            estimated_cost=input_cost + output_cost,
            breakdown=CostBreakdown(
                input_cost=input_cost,
                output_cost=output_cost,
                total_tokens=input_tokens + output_tokens,
            ),
        )

    async def moderate_content(self, content: str, provider: str | None = None) -> ModerationResult:
        """Moderate with the provider's own check, or a keyword screen."""
        name = provider or self._settings.default_provider
        if name in self._registry.enabled_providers():
            timeout = self._registry.get_config(name).timeout
            try:
                return await asyncio.wait_for(
                    self._registry.get(name).moderate_content(content), timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("provider=%s moderation timed out after %.1fs", name, timeout)
            except Exception as e:
                logger.debug("provider=%s moderation unavailable: %s", name, e)
        return keyword_moderation(content)


def keyword_moderation(content: str) -> ModerationResult:
    categories = sorted({m.lower() for m in _MODERATION_RE.findall(content)})
    return ModerationResult(
        flagged=bool(categories),
        categories=categories,
        confidence=0.8 if categories else 0.1,
    )


def _rolled(previous: float, *, ok: bool) -> float:
    """Exponentially weighted error rate."""
    return (1 - ERROR_RATE_ALPHA) * previous + ERROR_RATE_ALPHA * (0.0 if ok else 1.0)


async def _none() -> None:
    return None
