"""
Pipeline orchestration: run lock, progress hub and schedule evaluator
"""

from .errors import ConflictError, PipelineError, StageError, ValidationError
from .events import (
    DoneEvent,
    LogEvent,
    PipelineEvent,
    ProgressEvent,
    ProgressHub,
    ResetEvent,
    StartedEvent,
    Subscription,
)
from .scheduler import ScheduleEvaluator
from .service import PipelineOrchestrator
from .state import JobState, JobStateStore, LogEntry, PipelineStep, RunResult

__all__ = [
    "ConflictError",
    "DoneEvent",
    "JobState",
    "JobStateStore",
    "LogEntry",
    "LogEvent",
    "PipelineError",
    "PipelineEvent",
    "PipelineOrchestrator",
    "PipelineStep",
    "ProgressEvent",
    "ProgressHub",
    "ResetEvent",
    "RunResult",
    "ScheduleEvaluator",
    "StageError",
    "StartedEvent",
    "Subscription",
    "ValidationError",
]
