"""FastAPI endpoints under /api.

Endpoint groups: health, generation (text, image, audio, combined, choices)
and providers (listing, status, test, config, models, cost, moderation,
validation, usage metrics). Generation and provider endpoints live under
/api/ai/.
"""

from fastapi import APIRouter

from .generation import router as generation_router
from .health import router as health_router
from .providers import router as providers_router

router = APIRouter()
router.include_router(health_router)
router.include_router(generation_router, prefix="/ai")
router.include_router(providers_router, prefix="/ai")
