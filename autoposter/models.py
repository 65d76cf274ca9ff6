"""
API request/response models
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class PipelineStartRequest(BaseModel):
    dryRun: bool = False
    keywordId: Optional[str] = None


class PipelineStartResponse(BaseModel):
    success: bool = True
    message: str
    runId: str


class PipelineResetResponse(BaseModel):
    success: bool = True
    reset: bool = True
    wasRunning: bool


class ScheduleUpdateRequest(BaseModel):
    """Either a raw cron schedule, or a simple frequency + hours choice"""
    cronSchedule: Optional[str] = None
    frequency: Optional[str] = Field(default=None, pattern="^(daily1|daily2|weekday)$")
    hour1: Optional[int] = Field(default=None, ge=0, le=23)
    hour2: Optional[int] = Field(default=None, ge=0, le=23)
    dryRun: Optional[bool] = None


class ScheduleView(BaseModel):
    cronSchedule: str
    dryRun: bool
    schedules: List[str]
    description: str
    lastRunKey: Optional[str] = None
    evaluatorRunning: bool = False
