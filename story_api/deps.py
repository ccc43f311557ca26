from fastapi import Request

from story_engine.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """The orchestrator created by create_app()."""
    return request.app.state.orchestrator
