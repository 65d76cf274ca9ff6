"""
HTTP routers
"""

from fastapi import HTTPException, Request

from ..orchestrator import PipelineOrchestrator


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    """Dependency: the orchestrator created at startup (app.state.orchestrator)"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(503, "Pipeline orchestrator not available")
    return orchestrator
