"""Tests for story_engine.config."""

import pytest

from story_engine.config import (
    LOCAL_PROVIDER,
    Settings,
    build_registry,
    load_settings,
    provider_configs,
    validate_provider_config,
)
from story_engine.models import MOCKED_PROVIDER, ProviderConfig
from story_engine.providers import HttpTextProvider, MockedProvider


class TestLoadSettings:
    def test_defaults(self) -> None:
        settings = load_settings()
        assert settings == Settings()
        assert settings.timeout == 30.0

    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("DEFAULT_AI_PROVIDER", "local")
        monkeypatch.setenv("AI_ENABLE_FALLBACK", "false")
        monkeypatch.setenv("AI_TIMEOUT_MS", "2500")
        monkeypatch.setenv("AI_ENABLE_MODERATION", "0")
        settings = load_settings()
        assert settings.default_provider == "local"
        assert settings.enable_fallback is False
        assert settings.enable_moderation is False
        assert settings.timeout == 2.5

    def test_health_check_interval(self, monkeypatch) -> None:
        assert load_settings().health_check_interval == 60.0
        monkeypatch.setenv("AI_HEALTH_CHECK_INTERVAL_MS", "250")
        assert load_settings().health_check_interval == 0.25
        assert Settings(health_check_interval_ms=-5).health_check_interval == 0

    def test_bad_number_keeps_default(self, monkeypatch) -> None:
        monkeypatch.setenv("AI_TIMEOUT_MS", "soon")
        assert load_settings().timeout_ms == 30000

    def test_reads_env_file(self, tmp_path) -> None:
        env = tmp_path / "custom.env"
        env.write_text("LOCAL_LLM_URL=http://localhost:5001\n")
        assert load_settings(env).local_url == "http://localhost:5001"


class TestValidateProviderConfig:
    def test_mocked_needs_no_key(self) -> None:
        assert validate_provider_config(ProviderConfig(provider=MOCKED_PROVIDER)) == []

    def test_remote_needs_key(self) -> None:
        problems = validate_provider_config(ProviderConfig(provider="openai"))
        assert problems == ["API key is required for provider openai"]

    @pytest.mark.parametrize("field,value", [
        ("max_tokens", 0),
        ("max_tokens", 32001),
        ("temperature", 2.5),
        ("rate_limit", -1),
        ("timeout", 0),
    ])
    def test_ranges(self, field, value) -> None:
        config = ProviderConfig(provider=MOCKED_PROVIDER, **{field: value})
        assert len(validate_provider_config(config)) == 1


class TestBuildRegistry:
    def test_mocked_only_by_default(self) -> None:
        registry = build_registry(Settings())
        assert registry.frozen
        assert registry.available_providers() == [MOCKED_PROVIDER]
        assert isinstance(registry.get(MOCKED_PROVIDER), MockedProvider)

    def test_mocked_can_be_disabled(self) -> None:
        registry = build_registry(Settings(mocked_enabled=False))
        assert registry.enabled_providers() == []

    def test_local_provider(self) -> None:
        settings = Settings(local_url="http://localhost:5001", local_model="llama", timeout_ms=5000)
        registry = build_registry(settings)
        config = registry.get_config(LOCAL_PROVIDER)
        assert config.capabilities == ("text",)
        assert config.timeout == 5.0
        assert isinstance(registry.get(LOCAL_PROVIDER), HttpTextProvider)

    def test_invalid_config_skipped(self) -> None:
        registry = build_registry(Settings(timeout_ms=0))
        assert registry.available_providers() == []

    def test_provider_configs_apply_timeout(self) -> None:
        configs = provider_configs(Settings(timeout_ms=1500))
        assert configs[0].timeout == 1.5
