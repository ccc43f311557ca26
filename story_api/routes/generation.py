"""Generation endpoints.

Successful results are returned as-is (absent fields omitted). Failed
results are raised as DomainErrors so they leave the process in the
boundary error shape.
"""

from fastapi import APIRouter, Depends

from story_api.deps import get_orchestrator
from story_engine.errors import ErrorCode, error_for_code
from story_engine.models import (
    AudioGenerationRequest,
    ChoiceGenerationRequest,
    CombinedGenerationRequest,
    GenerationResult,
    ImageGenerationRequest,
    TextGenerationRequest,
)
from story_engine.orchestrator import Orchestrator

router = APIRouter()


def _unwrap(result: GenerationResult) -> dict:
    if not result.success:
        raise error_for_code(
            result.error_code or ErrorCode.AI_PROVIDER_ERROR,
            result.error or "Generation failed",
            details={"provider": result.provider, "generation_time": result.generation_time},
        )
    return result.model_dump(mode="json", exclude_none=True)


@router.post("/generate/text")
async def generate_text(body: TextGenerationRequest, orch: Orchestrator = Depends(get_orchestrator)):
    """Generate story text, optionally with choices."""
    return _unwrap(await orch.generate_text(body))


@router.post("/generate/image")
async def generate_image(body: ImageGenerationRequest, orch: Orchestrator = Depends(get_orchestrator)):
    """Generate an illustration URL."""
    return _unwrap(await orch.generate_image(body))


@router.post("/generate/audio")
async def generate_audio(body: AudioGenerationRequest, orch: Orchestrator = Depends(get_orchestrator)):
    """Generate a narration audio URL."""
    return _unwrap(await orch.generate_audio(body))


@router.post("/generate/combined")
async def generate_combined(
    body: CombinedGenerationRequest, orch: Orchestrator = Depends(get_orchestrator),
):
    """Text, then optional image and audio, with a per-part breakdown."""
    return _unwrap(await orch.generate_combined_content(body))


@router.post("/generate/choices")
async def generate_choices(
    body: ChoiceGenerationRequest, orch: Orchestrator = Depends(get_orchestrator),
):
    """Generate reader choices that continue `current_content`."""
    choices = await orch.generate_choices(body)
    return [c.model_dump(mode="json", exclude_none=True) for c in choices]
