"""
Schedule management endpoints - posting.cronSchedule in settings.json
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..models import ScheduleUpdateRequest, ScheduleView
from ..orchestrator import PipelineOrchestrator, ValidationError
from ..orchestrator.scheduler import build_cron, describe_cron, split_schedule, validate_schedule
from . import get_orchestrator

router = APIRouter(prefix="/api", tags=["schedule"])
logger = logging.getLogger(__name__)


def _schedule_view(orchestrator: PipelineOrchestrator) -> ScheduleView:
    scheduler = orchestrator.scheduler
    cron_schedule = scheduler.read_schedule()
    return ScheduleView(
        cronSchedule=cron_schedule,
        dryRun=bool(orchestrator.settings.get("posting.dryRun", False)),
        schedules=split_schedule(cron_schedule),
        description=describe_cron(cron_schedule),
        lastRunKey=scheduler.last_run_key,
        evaluatorRunning=scheduler.is_running,
    )


@router.get("/schedule", response_model=ScheduleView)
async def get_schedule(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Get the current schedule and evaluator status."""
    return _schedule_view(orchestrator)


@router.put("/schedule", response_model=ScheduleView)
async def update_schedule(
    update: ScheduleUpdateRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """
    Update the schedule. Takes effect at the next evaluator tick.

    Either cronSchedule ("0 9 * * *;0 20 * * *") or frequency + hour1
    (+ hour2 for daily2). cronSchedule wins when both are given.
    """
    cron_schedule = update.cronSchedule
    if cron_schedule is None and update.frequency is not None:
        if update.hour1 is None:
            raise ValidationError("hour1 is required when frequency is given")
        cron_schedule = build_cron(update.frequency, update.hour1, update.hour2)

    # Validate everything before writing anything
    expressions = validate_schedule(cron_schedule) if cron_schedule is not None else None

    try:
        if expressions is not None:
            orchestrator.settings.update("posting.cronSchedule", ";".join(expressions))
        if update.dryRun is not None:
            orchestrator.settings.update("posting.dryRun", update.dryRun)
    except OSError as e:
        logger.error(f"Failed to save schedule: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="Failed to save schedule. Please check logs for details."
        )

    view = _schedule_view(orchestrator)
    logger.info(f"Schedule updated: {view.cronSchedule} ({view.description}), dry_run={view.dryRun}")
    return view
