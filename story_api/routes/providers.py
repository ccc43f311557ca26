"""Provider endpoints: listing, status, testing, models, cost, moderation."""

from typing import Literal

from fastapi import APIRouter, Body, Depends

from story_api.deps import get_orchestrator
from story_engine.errors import not_found_error
from story_engine.models import (
    AudioGenerationRequest,
    ImageGenerationRequest,
    ProviderRequirements,
    TextGenerationRequest,
)
from story_engine.orchestrator import Orchestrator

from .models import EstimateCostBody, ModerateBody

router = APIRouter()

_REQUEST_TYPES = {
    "text": TextGenerationRequest,
    "image": ImageGenerationRequest,
    "audio": AudioGenerationRequest,
}


def _require(orch: Orchestrator, name: str) -> None:
    if not orch.is_provider_supported(name):
        raise not_found_error(f"Provider not found: {name}", details={"provider": name})


@router.get("/providers")
async def list_providers(orch: Orchestrator = Depends(get_orchestrator)):
    """Registered providers with their enabled flag and capabilities."""
    result = []
    for name in orch.registry.available_providers():
        config = orch.get_provider_config(name)
        result.append({
            "provider": name,
            "enabled": config.enabled,
            "capabilities": list(config.capabilities),
        })
    return result


@router.get("/providers/status")
async def provider_statuses(orch: Orchestrator = Depends(get_orchestrator)):
    """Cached status of every provider that has been probed or used."""
    statuses = (orch.get_provider_status(n) for n in orch.registry.available_providers())
    return [s.model_dump(mode="json") for s in statuses if s is not None]


@router.get("/providers/best")
async def best_provider(
    kind: Literal["text", "image", "audio"] = "text",
    max_response_time: float | None = None,
    max_cost: float | None = None,
    min_quality: float | None = None,
    orch: Orchestrator = Depends(get_orchestrator),
):
    """Best provider for a kind under optional ceilings; provider is null when none qualifies."""
    requirements = ProviderRequirements(
        max_response_time=max_response_time, max_cost=max_cost, min_quality=min_quality,
    )
    return {"provider": await orch.get_best_provider(kind, requirements)}


@router.get("/providers/{name}/status")
async def provider_status(name: str, orch: Orchestrator = Depends(get_orchestrator)):
    """Probe a provider now and return its fresh status."""
    _require(orch, name)
    status = await orch.check_provider_status(name)
    return status.model_dump(mode="json")


@router.post("/providers/{name}/test")
async def test_provider(name: str, orch: Orchestrator = Depends(get_orchestrator)):
    """Probe plus a tiny generation."""
    result = await orch.test_provider(name)
    return result.model_dump(mode="json")


@router.get("/providers/{name}/config")
async def provider_config(name: str, orch: Orchestrator = Depends(get_orchestrator)):
    """Provider configuration with the credential masked."""
    _require(orch, name)
    return orch.get_provider_config(name).redacted()


@router.get("/models/{name}")
async def available_models(name: str, orch: Orchestrator = Depends(get_orchestrator)):
    """Models offered by a provider."""
    _require(orch, name)
    return await orch.get_available_models(name)


@router.post("/estimate-cost")
async def estimate_cost(body: EstimateCostBody, orch: Orchestrator = Depends(get_orchestrator)):
    """Price a call of the given token counts."""
    estimate = await orch.estimate_cost(body.provider, body.input_tokens, body.output_tokens, body.model)
    return estimate.model_dump(mode="json")


@router.post("/moderate-content")
async def moderate_content(body: ModerateBody, orch: Orchestrator = Depends(get_orchestrator)):
    """Screen content with the provider's moderation or the keyword fallback."""
    result = await orch.moderate_content(body.content, provider=body.provider)
    return result.model_dump(mode="json")


@router.post("/validate/{kind}")
async def validate(
    kind: Literal["text", "image", "audio"],
    body: dict = Body(...),
    orch: Orchestrator = Depends(get_orchestrator),
):
    """Validate a generation request without running it."""
    request = _REQUEST_TYPES[kind].model_validate(body)
    return orch.validate_request(request, kind).model_dump(mode="json")


@router.get("/metrics")
async def usage_metrics(orch: Orchestrator = Depends(get_orchestrator)):
    """Usage counters since process start."""
    return orch.get_usage_metrics().model_dump(mode="json")
