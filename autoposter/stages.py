"""
Stage sequence contract

The real stages (competitor analysis, drafting, image synthesis, publishing)
live outside this service. The orchestrator only knows this signature:

    async def stage_sequence(options: RunOptions, on_progress) -> StageResult | Mapping

on_progress accepts keyword arguments step, message, progress, keyword, title
and must be called at each step boundary.
"""

import asyncio
import importlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOptions:
    """Options passed through to the stage sequence"""
    dry_run: bool = False
    keyword_id: Optional[str] = None


@dataclass
class StageResult:
    """What a stage sequence returns"""
    success: bool
    title: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    elapsed: Optional[float] = None
    reason: Optional[str] = None

    @classmethod
    def from_value(cls, value: Union["StageResult", Mapping[str, Any]]) -> "StageResult":
        """Accept either a StageResult or a plain mapping"""
        if isinstance(value, StageResult):
            return value
        if not isinstance(value, Mapping):
            raise TypeError(
                f"Stage sequence must return StageResult or a mapping, got {type(value).__name__}"
            )
        return cls(
            success=bool(value.get("success", False)),
            title=value.get("title"),
            url=value.get("url"),
            error=value.get("error"),
            elapsed=value.get("elapsed"),
            reason=value.get("reason"),
        )


ProgressCallback = Callable[..., None]
StageSequence = Callable[[RunOptions, ProgressCallback], Awaitable[Union[StageResult, Mapping[str, Any]]]]


# (step, message, progress) for the rehearsal run
_REHEARSAL_STEPS = [
    ("keyword", "Selecting keyword...", 5),
    ("knowledge", "Loading knowledge files...", 10),
    ("analysis", "Analyzing competitors...", 30),
    ("content", "Drafting article...", 60),
    ("image", "Generating header image...", 80),
    ("posting", "[dry-run] Skipping publish", 95),
]


async def rehearsal_stage_sequence(
    options: RunOptions,
    on_progress: ProgressCallback,
    step_delay: float = 0.5
) -> StageResult:
    """
    Walk every step without doing any work.

    Used when no stage sequence is configured, so the orchestrator, the
    stream and the scheduler can be exercised end to end.
    """
    started = time.monotonic()
    on_progress(step="keyword", message="Rehearsal run (no stage sequence configured)", progress=0)
    for step, message, progress in _REHEARSAL_STEPS:
        on_progress(step=step, message=message, progress=progress)
        await asyncio.sleep(step_delay)

    title = "Rehearsal article"
    if options.keyword_id:
        title = f"Rehearsal article ({options.keyword_id})"
    on_progress(title=title, progress=100)

    return StageResult(
        success=True,
        title=title,
        elapsed=round(time.monotonic() - started, 1),
    )


def load_stage_sequence(import_path: Optional[str]) -> StageSequence:
    """
    Resolve "package.module:function" to the stage sequence callable.

    Args:
        import_path: Import path, or None/empty for the rehearsal sequence

    Raises:
        ValueError: If import_path is not of the form module:attribute
        ImportError / AttributeError: If the target cannot be imported
        TypeError: If the target is not callable
    """
    if not import_path:
        logger.warning("No stage sequence configured, using rehearsal sequence")
        return rehearsal_stage_sequence

    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Stage sequence must look like 'package.module:function', got {import_path!r}")

    module = importlib.import_module(module_name)
    target = getattr(module, attr)
    if not callable(target):
        raise TypeError(f"Stage sequence {import_path!r} is not callable")

    logger.info(f"Stage sequence loaded: {import_path}")
    return target
