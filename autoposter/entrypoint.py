"""
Orchestrator Entrypoint

Single place that builds a PipelineOrchestrator, so the HTTP server and the
run-once CLI are wired identically.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from .config import AppConfig
from .orchestrator import PipelineOrchestrator
from .settings import SettingsStore
from .stages import StageSequence, load_stage_sequence


def create_orchestrator(
    config: AppConfig,
    stage_sequence: Optional[StageSequence] = None,
    logger: Optional[logging.Logger] = None
) -> PipelineOrchestrator:
    """
    Create a PipelineOrchestrator (not started).

    Args:
        config: Application config
        stage_sequence: Stage sequence to run; defaults to config.stage_sequence
        logger: Optional logger instance

    Returns:
        Initialized PipelineOrchestrator
    """
    if logger is None:
        logger = logging.getLogger("autoposter")

    if stage_sequence is None:
        stage_sequence = load_stage_sequence(config.stage_sequence)

    settings = SettingsStore(config.settings_file, logger=logger)
    settings.init()

    return PipelineOrchestrator(
        config=config,
        stage_sequence=stage_sequence,
        settings=settings,
        logger=logger
    )


async def run_pipeline_once(
    orchestrator: PipelineOrchestrator,
    dry_run: bool = False,
    keyword_id: Optional[str] = None,
    max_wait_time: Optional[float] = None
) -> Tuple[int, Dict[str, Any]]:
    """
    Run a single pipeline execution and wait for completion.

    Returns:
        Tuple of (exit_code, final snapshot)
        - exit_code: 0 for success, 1 for failure or timeout
    """
    logger = orchestrator.logger

    run_id = await orchestrator.start_pipeline(dry_run=dry_run, keyword_id=keyword_id)
    logger.info(f"Pipeline started: {run_id}")

    try:
        status = await orchestrator.wait_for_completion(timeout=max_wait_time)
    except asyncio.TimeoutError:
        logger.error(f"Pipeline did not finish within {max_wait_time}s")
        return 1, orchestrator.get_status()

    result = status.get("result") or {}
    if result.get("success"):
        logger.info(f"Pipeline completed: {result.get('title')}")
        return 0, status

    logger.error(f"Pipeline failed: {result.get('error') or result.get('reason') or 'unknown'}")
    return 1, status
