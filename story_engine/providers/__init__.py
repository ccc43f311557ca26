"""AI provider implementations.

    AIProvider        — protocol every backend implements
    MockedProvider    — deterministic canned responses
    HttpTextProvider  — self-hosted text-completion server over httpx
"""

from .base import AIProvider, ProviderError
from .http import HttpTextProvider
from .mocked import MockedProvider

__all__ = ["AIProvider", "HttpTextProvider", "MockedProvider", "ProviderError"]
