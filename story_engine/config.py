"""Process configuration — environment variables, provider configs, registry.

Settings are read once from the environment (after loading `.env` from the
repo root) into a frozen `Settings`. Provider configs derived from it are
frozen pydantic models, so nothing here changes after startup.

Environment variables:

    DEFAULT_AI_PROVIDER      provider used when a request names none (mocked)
    AI_ENABLE_FALLBACK       pick the best provider when none is named (true)
    AI_MAX_RETRIES           ignored; provider calls are single-attempt
    AI_TIMEOUT_MS            per provider call timeout (30000)
    AI_HEALTH_CHECK_INTERVAL_MS  provider re-probe interval; 0 disables (60000)
    AI_ENABLE_MODERATION     moderate generated text (true)
    AI_ENABLE_COST_TRACKING  compute cost on results (true)
    MOCKED_AI_ENABLED        register the mocked provider as enabled (true)
    LOCAL_LLM_URL            register a "local" text provider at this URL
    LOCAL_LLM_API_KEY        bearer token for the local provider
    LOCAL_LLM_FORMAT         koboldcpp | openai (koboldcpp)
    LOCAL_LLM_MODEL          model name sent to the local provider
    LOCAL_LLM_COST_PER_TOKEN published rate for the local provider (0)
    LOG_LEVEL                root log level for the API (INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from story_engine.models import MOCKED_PROVIDER, ProviderConfig
from story_engine.providers import AIProvider, HttpTextProvider, MockedProvider
from story_engine.providers.mocked import COST_PER_TOKEN, DEFAULT_MODEL, MODELS
from story_engine.registry import ProviderRegistry

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent
LOCAL_PROVIDER = "local"

MAX_TOKENS_LIMIT = 32000


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        logger.warning("ignoring non-numeric %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class Settings:
    default_provider: str = MOCKED_PROVIDER
    enable_fallback: bool = True
    timeout_ms: int = 30000
    health_check_interval_ms: int = 60000
    enable_moderation: bool = True
    enable_cost_tracking: bool = True
    mocked_enabled: bool = True
    local_url: str = ""
    local_api_key: str = ""
    local_format: str = "koboldcpp"
    local_model: str = ""
    local_cost_per_token: float = 0.0
    log_level: str = "INFO"

    @property
    def timeout(self) -> float:
        """Provider call timeout in seconds."""
        return self.timeout_ms / 1000

    @property
    def health_check_interval(self) -> float:
        """Seconds between provider re-probes; 0 disables them."""
        return max(self.health_check_interval_ms, 0) / 1000


def load_settings(env_file: Path | None = None) -> Settings:
    """Read Settings from the environment, loading `.env` first if present."""
    load_dotenv(env_file or ROOT / ".env")
    return Settings(
        default_provider=os.getenv("DEFAULT_AI_PROVIDER", MOCKED_PROVIDER),
        enable_fallback=_env_bool("AI_ENABLE_FALLBACK", True),
        timeout_ms=_env_int("AI_TIMEOUT_MS", 30000),
        health_check_interval_ms=_env_int("AI_HEALTH_CHECK_INTERVAL_MS", 60000),
        enable_moderation=_env_bool("AI_ENABLE_MODERATION", True),
        enable_cost_tracking=_env_bool("AI_ENABLE_COST_TRACKING", True),
        mocked_enabled=_env_bool("MOCKED_AI_ENABLED", True),
        local_url=os.getenv("LOCAL_LLM_URL", ""),
        local_api_key=os.getenv("LOCAL_LLM_API_KEY", ""),
        local_format=os.getenv("LOCAL_LLM_FORMAT", "koboldcpp"),
        local_model=os.getenv("LOCAL_LLM_MODEL", ""),
        local_cost_per_token=_env_float("LOCAL_LLM_COST_PER_TOKEN", 0.0),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def provider_configs(settings: Settings) -> list[ProviderConfig]:
    """Build the immutable provider configs described by `settings`."""
    configs = [
        ProviderConfig(
            provider=MOCKED_PROVIDER,
            model=DEFAULT_MODEL,
            max_tokens=4000,
            temperature=0.7,
            enabled=settings.mocked_enabled,
            rate_limit=0,
            cost_per_token=COST_PER_TOKEN,
            timeout=settings.timeout,
            capabilities=("text", "image", "audio"),
            supported_models=tuple(MODELS),
        ),
    ]
    if settings.local_url:
        configs.append(ProviderConfig(
            provider=LOCAL_PROVIDER,
            api_key=settings.local_api_key,
            base_url=settings.local_url,
            model=settings.local_model,
            cost_per_token=settings.local_cost_per_token,
            timeout=settings.timeout,
            capabilities=("text",),
            supported_models=(settings.local_model,) if settings.local_model else (),
        ))
    return configs


def validate_provider_config(config: ProviderConfig) -> list[str]:
    """Return a list of problems with `config`; empty when it is usable."""
    errors: list[str] = []
    if config.provider not in (MOCKED_PROVIDER, LOCAL_PROVIDER) and not config.api_key:
        errors.append(f"API key is required for provider {config.provider}")
    if not 1 <= config.max_tokens <= MAX_TOKENS_LIMIT:
        errors.append(f"max_tokens must be between 1 and {MAX_TOKENS_LIMIT}")
    if not 0 <= config.temperature <= 2:
        errors.append("temperature must be between 0 and 2")
    if config.rate_limit < 0:
        errors.append("rate_limit must be non-negative")
    if config.timeout <= 0:
        errors.append("timeout must be positive")
    return errors


def _make_provider(config: ProviderConfig, settings: Settings) -> AIProvider:
    if config.provider == MOCKED_PROVIDER:
        return MockedProvider()
    return HttpTextProvider(
        name=config.provider,
        base_url=config.base_url or "",
        api_key=config.api_key,
        wire_format="openai" if settings.local_format == "openai" else "koboldcpp",
        model=config.model,
        cost_per_token=config.cost_per_token,
        timeout=config.timeout,
    )


def build_registry(settings: Settings) -> ProviderRegistry:
    """Register every valid provider config and freeze the registry."""
    registry = ProviderRegistry()
    for config in provider_configs(settings):
        problems = validate_provider_config(config)
        if problems:
            logger.error("skipping provider=%s: %s", config.provider, "; ".join(problems))
            continue
        registry.register(config, _make_provider(config, settings))
    registry.freeze()
    return registry
