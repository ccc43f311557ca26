import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from story_api.handlers import register_error_handlers
from story_api.routes import router
from story_engine.config import build_registry, load_settings
from story_engine.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run periodic provider health checks while the app is up."""
    orchestrator: Orchestrator = app.state.orchestrator
    interval = orchestrator.settings.health_check_interval
    task = None
    if interval > 0:
        logger.info("provider health checks every %gs", interval)
        task = asyncio.create_task(orchestrator.run_health_checks(interval))
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if orchestrator is None:
        orchestrator = Orchestrator(build_registry(settings), settings)

    app = FastAPI(title="Story Engine", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.include_router(router, prefix="/api")
    register_error_handlers(app)
    return app


# Default app instance for uvicorn
app = create_app()
