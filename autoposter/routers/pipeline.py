"""
Pipeline management endpoints – thin API layer
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ..models import PipelineResetResponse, PipelineStartRequest, PipelineStartResponse
from ..orchestrator import PipelineOrchestrator
from . import get_orchestrator

router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])
logger = logging.getLogger(__name__)


@router.post("", status_code=202, response_model=PipelineStartResponse)
async def start_pipeline(
    body: Optional[PipelineStartRequest] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """
    Start a pipeline run.

    Request body (JSON, optional):
    {
        "dryRun": false,       # skip publishing
        "keywordId": "..."     # use this keyword instead of the next pending one
    }

    Returns as soon as the run is launched; follow it on /api/pipeline/stream.
    A run already in progress gives 409.
    """
    body = body or PipelineStartRequest()
    logger.info(f"[START] Starting pipeline: dry_run={body.dryRun}, keyword_id={body.keywordId}")

    # ConflictError is mapped to 409 by the app's exception handler
    run_id = await orchestrator.start_pipeline(
        dry_run=body.dryRun,
        keyword_id=body.keywordId,
    )
    return PipelineStartResponse(message="Pipeline started", runId=run_id)


@router.get("")
async def get_pipeline_status(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_status()


@router.delete("", response_model=PipelineResetResponse)
async def reset_pipeline(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Force the pipeline back to idle. An in-flight run is not cancelled."""
    result = orchestrator.reset_pipeline()
    return PipelineResetResponse(wasRunning=result["wasRunning"])
