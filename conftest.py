import pytest

from story_engine import config
from story_engine.config import Settings
from story_engine.models import MOCKED_PROVIDER, ProviderConfig
from story_engine.orchestrator import Orchestrator
from story_engine.providers import MockedProvider
from story_engine.registry import ProviderRegistry

_ENV_VARS = (
    "DEFAULT_AI_PROVIDER",
    "AI_ENABLE_FALLBACK",
    "AI_MAX_RETRIES",
    "AI_HEALTH_CHECK_INTERVAL_MS",
    "AI_TIMEOUT_MS",
    "AI_ENABLE_MODERATION",
    "AI_ENABLE_COST_TRACKING",
    "MOCKED_AI_ENABLED",
    "LOCAL_LLM_URL",
    "LOCAL_LLM_API_KEY",
    "LOCAL_LLM_FORMAT",
    "LOCAL_LLM_MODEL",
    "LOCAL_LLM_COST_PER_TOKEN",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep shell variables and any developer .env out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "ROOT", tmp_path)
    yield


@pytest.fixture
def registry() -> ProviderRegistry:
    """Frozen registry holding only the mocked provider."""
    reg = ProviderRegistry()
    reg.register(
        ProviderConfig(provider=MOCKED_PROVIDER, model="test-model-v1", timeout=5.0),
        MockedProvider(),
    )
    reg.freeze()
    return reg


@pytest.fixture
def orchestrator(registry: ProviderRegistry) -> Orchestrator:
    return Orchestrator(registry, Settings())
