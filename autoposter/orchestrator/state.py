"""
Job State - PipelineStep, LogEntry, RunResult, JobState and its store
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from datetime import datetime


class PipelineStep(Enum):
    """Pipeline steps, in run order, plus the idle and terminal markers"""
    IDLE = "idle"
    KEYWORD = "keyword"
    KNOWLEDGE = "knowledge"
    ANALYSIS = "analysis"
    CONTENT = "content"
    IMAGE = "image"
    POSTING = "posting"
    DONE = "done"
    ERROR = "error"


# Forward order of a run. ERROR is reachable from any of these.
STEP_ORDER: List[PipelineStep] = [
    PipelineStep.KEYWORD,
    PipelineStep.KNOWLEDGE,
    PipelineStep.ANALYSIS,
    PipelineStep.CONTENT,
    PipelineStep.IMAGE,
    PipelineStep.POSTING,
    PipelineStep.DONE,
]

TERMINAL_STEPS = {PipelineStep.DONE, PipelineStep.ERROR}

LOG_LEVELS = ("info", "warn", "error")


@dataclass(frozen=True)
class LogEntry:
    """One line of the job log shown to clients"""
    time: str
    level: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"time": self.time, "level": self.level, "message": self.message}


@dataclass
class RunResult:
    """Terminal outcome of a run"""
    success: bool
    title: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    elapsed: Optional[float] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # Unset optional fields are left out of the wire form
        data: Dict[str, Any] = {"success": self.success}
        for key in ("title", "url", "error", "elapsed", "reason"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class JobState:
    """The single current-run record"""
    running: bool = False
    step: PipelineStep = PipelineStep.IDLE
    keyword: str = ""
    title: str = ""
    progress: int = 0
    started_at: Optional[datetime] = None
    logs: List[LogEntry] = field(default_factory=list)
    result: Optional[RunResult] = None
    run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (wire keys are camelCase)"""
        return {
            "running": self.running,
            "step": self.step.value,
            "keyword": self.keyword,
            "title": self.title,
            "progress": self.progress,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "logs": [entry.to_dict() for entry in self.logs],
            "result": self.result.to_dict() if self.result else None,
            "runId": self.run_id,
        }


class JobStateStore:
    """
    Holds the process-wide JobState.

    Only the orchestrator mutates run fields (through `state`); everybody
    else reads through snapshot(), which never hands out live objects.
    """

    def __init__(self):
        self._state = JobState()

    @property
    def state(self) -> JobState:
        return self._state

    def snapshot(self) -> Dict[str, Any]:
        """Independent copy of the current state"""
        return self._state.to_dict()

    def begin_run(self, run_id: str, started_at: datetime) -> JobState:
        """Reset to a fresh running state"""
        self._state.running = True
        self._state.step = PipelineStep.KEYWORD
        self._state.keyword = ""
        self._state.title = ""
        self._state.progress = 0
        self._state.started_at = started_at
        self._state.logs = []
        self._state.result = None
        self._state.run_id = run_id
        return self._state

    def clear(self) -> JobState:
        """Back to idle, regardless of the current state"""
        self._state.running = False
        self._state.step = PipelineStep.IDLE
        self._state.keyword = ""
        self._state.title = ""
        self._state.progress = 0
        self._state.started_at = None
        self._state.logs = []
        self._state.result = None
        self._state.run_id = None
        return self._state
