"""Provider registry — provider identifier → (config, implementation).

Populated once at startup, then frozen. After `freeze()` the registry is
read-only, so concurrent requests can read it without locking.
"""

from __future__ import annotations

import logging

from story_engine.errors import ErrorCode, internal_error, not_found_error
from story_engine.models import ProviderConfig
from story_engine.providers import AIProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self) -> None:
        self._configs: dict[str, ProviderConfig] = {}
        self._providers: dict[str, AIProvider] = {}
        self._models: dict[str, list[str]] = {}
        self._frozen = False

    def register(self, config: ProviderConfig, provider: AIProvider) -> None:
        if self._frozen:
            raise internal_error(
                f"Cannot register provider {config.provider} after startup",
                code=ErrorCode.CONFIGURATION_ERROR,
            )
        if config.provider in self._configs:
            raise internal_error(
                f"Provider {config.provider} registered twice",
                code=ErrorCode.CONFIGURATION_ERROR,
            )
        self._configs[config.provider] = config
        self._providers[config.provider] = provider
        logger.info("registered provider=%s enabled=%s", config.provider, config.enabled)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def is_provider_supported(self, name: str) -> bool:
        return name in self._configs

    def get_config(self, name: str) -> ProviderConfig | None:
        return self._configs.get(name)

    def get(self, name: str) -> AIProvider:
        """Return the implementation for `name`. Raises a not-found DomainError."""
        try:
            return self._providers[name]
        except KeyError:
            raise not_found_error(f"Provider not found: {name}", details={"provider": name}) from None

    def available_providers(self) -> list[str]:
        return list(self._configs)

    def enabled_providers(self, kind: str | None = None) -> list[str]:
        """Names of enabled providers, optionally limited to those supporting `kind`."""
        return [
            name for name, cfg in self._configs.items()
            if cfg.enabled and (kind is None or cfg.supports(kind))
        ]

    async def get_available_models(self, name: str) -> list[str]:
        """Model list for a provider; asked of the provider once, then cached.

        Falls back to the configured `supported_models` when the provider
        cannot be asked.
        """
        if name in self._models:
            return list(self._models[name])
        config = self.get_config(name)
        if config is None:
            return []
        try:
            models = await self.get(name).get_models()
        except Exception as e:
            logger.warning("get_models failed provider=%s: %s", name, e)
            return list(config.supported_models)
        self._models[name] = list(models)
        return list(models)
