"""
Pipeline Orchestrator Service - run lock, state machine, stage driver
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from ..config import AppConfig
from ..settings import SettingsStore
from ..stages import ProgressCallback, RunOptions, StageResult, StageSequence
from .errors import ConflictError, StageError
from .events import (
    DoneEvent,
    Listener,
    LogEvent,
    ProgressEvent,
    ProgressHub,
    ResetEvent,
    StartedEvent,
    Subscription,
)
from .scheduler import ScheduleEvaluator
from .state import (
    JobStateStore,
    PipelineStep,
    RunResult,
    STEP_ORDER,
    TERMINAL_STEPS,
)

_PYTHON_LOG_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _can_advance(current: PipelineStep, new: PipelineStep) -> bool:
    """Steps only move forward; ERROR is reachable from anywhere."""
    if new == PipelineStep.ERROR:
        return True
    if new == PipelineStep.IDLE:
        # Only reset_pipeline() returns the job to idle
        return False
    if current in TERMINAL_STEPS:
        return new == current
    if current in STEP_ORDER and new in STEP_ORDER:
        return STEP_ORDER.index(new) >= STEP_ORDER.index(current)
    return True


class PipelineOrchestrator:
    """
    Main orchestrator service.

    Owns the job state, the progress hub and the schedule evaluator. Create
    exactly one per process and pass it to whoever needs it.

    At most one run holds the lock (state.running). The check-and-set in
    start_pipeline() runs before its first await, so on a single event loop
    it cannot interleave with another start.
    """

    def __init__(
        self,
        config: AppConfig,
        stage_sequence: StageSequence,
        settings: Optional[SettingsStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self.stage_sequence = stage_sequence
        self.logger = logger or logging.getLogger(__name__)
        self.settings = settings or SettingsStore(config.settings_file, logger=self.logger)
        self.clock = clock or config.now

        # Initialize components
        self.store = JobStateStore()
        self.hub = ProgressHub(
            store=self.store,
            clock=self.clock,
            log_high=config.log_buffer_high,
            log_low=config.log_buffer_low,
            logger=self.logger
        )

        # Single construction point for the evaluator
        self.scheduler = ScheduleEvaluator(
            orchestrator=self,
            settings=self.settings,
            tick_interval_sec=config.tick_interval_sec,
            clock=self.clock,
            logger=self.logger
        )

        self._running = False
        self._run_task: Optional[asyncio.Task] = None
        # Strong references so superseded runs are not garbage collected mid-flight
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Service lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Start orchestrator (schedule evaluator)"""
        if self._running:
            return

        self._running = True

        if self.config.scheduler_enabled:
            await self.scheduler.start()
        else:
            self.logger.info("Schedule evaluator disabled by configuration")

        self.logger.info("Pipeline Orchestrator started")

    async def stop(self):
        """Stop orchestrator; give the current run a grace period, then cancel it"""
        self._running = False

        await self.scheduler.stop()

        task = self._run_task
        if task and not task.done():
            self.logger.info(
                f"Waiting up to {self.config.shutdown_grace_sec}s for the current run to finish"
            )
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.config.shutdown_grace_sec)
            except asyncio.TimeoutError:
                self.logger.warning("Current run did not finish in time, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        # Runs orphaned by a stale force-reset
        orphans = [t for t in self._tasks if not t.done()]
        if orphans:
            self.logger.warning(f"Cancelling {len(orphans)} superseded run(s)")
            for orphan in orphans:
                orphan.cancel()
            await asyncio.gather(*orphans, return_exceptions=True)

        self.logger.info("Pipeline Orchestrator stopped")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def start_pipeline(self, dry_run: bool = False, keyword_id: Optional[str] = None) -> str:
        """
        Start a new pipeline run in the background.

        Args:
            dry_run: Run every stage but skip publishing
            keyword_id: Use this keyword instead of the next pending one

        Returns:
            run_id of the new run

        Raises:
            ConflictError: If a run started less than stale_lock_timeout_sec ago is still running
        """
        state = self.store.state
        now = self.clock()
        stale_elapsed = None

        if state.running:
            elapsed = (now - state.started_at).total_seconds() if state.started_at else 0
            if elapsed <= self.config.stale_lock_timeout_sec:
                raise ConflictError("Pipeline is already running")
            # Releases the lock only; the old task keeps going
            stale_elapsed = elapsed
            self.logger.warning(
                f"Stale run {state.run_id} force-reset after {elapsed:.0f}s "
                f"(threshold {self.config.stale_lock_timeout_sec}s)"
            )

        run_id = uuid.uuid4().hex
        self.store.begin_run(run_id=run_id, started_at=now)

        if stale_elapsed is not None:
            self._log(
                "warn",
                f"Previous run timed out after {stale_elapsed:.0f}s; stale run force-reset"
            )

        mode = "dry-run" if dry_run else "live"
        keyword_label = ", keyword specified" if keyword_id else ""
        self._log("info", f"Pipeline started (mode={mode}{keyword_label})")
        self.hub.broadcast(StartedEvent())

        options = RunOptions(dry_run=dry_run, keyword_id=keyword_id)
        task = asyncio.create_task(self._execute_run(run_id, options))
        self._run_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return run_id

    async def _execute_run(self, run_id: str, options: RunOptions):
        """Run the stage sequence. Never raises (except cancellation on shutdown)."""
        state = self.store.state

        try:
            raw_result = await self.stage_sequence(options, self._progress_callback(run_id))
            result = StageResult.from_value(raw_result)
            self._warn_if_superseded(run_id)

            state.step = PipelineStep.DONE if result.success else PipelineStep.ERROR
            if result.success:
                state.progress = 100
            state.result = RunResult(
                success=result.success,
                title=result.title,
                url=result.url,
                error=result.error,
                elapsed=result.elapsed,
                reason=result.reason,
            )

            if result.success:
                self._log("info", f"Completed: {result.title} ({result.elapsed}s)")
            else:
                self._log("error", f"Failed: {result.error or result.reason or 'unknown'}")
            self.hub.broadcast(DoneEvent())

        except asyncio.CancelledError:
            if self.store.state.run_id == run_id:
                self._fail_run(run_id, StageError(RuntimeError("Run cancelled")))
            else:
                self.logger.warning(f"Superseded run {run_id[:8]} cancelled")
            raise
        except Exception as e:
            self.logger.error(f"Pipeline run {run_id[:8]} error: {e}", exc_info=True)
            self._fail_run(run_id, StageError(e))
        finally:
            # Always release the lock
            state.running = False
            self.logger.info(f"Pipeline run {run_id[:8]} finished: step={state.step.value}")

    def _fail_run(self, run_id: str, error: StageError):
        self._warn_if_superseded(run_id)
        state = self.store.state
        state.step = PipelineStep.ERROR
        state.result = RunResult(success=False, error=str(error))
        self._log("error", f"Fatal error: {error}")
        self.hub.broadcast(DoneEvent())

    def _warn_if_superseded(self, run_id: str):
        current = self.store.state.run_id
        if current != run_id:
            self.logger.warning(
                f"Run {run_id[:8]} finished after being superseded (current: {current}); "
                f"its outcome overwrites the current state"
            )

    def _progress_callback(self, run_id: str) -> ProgressCallback:
        def on_progress(
            step: Optional[str] = None,
            message: Optional[str] = None,
            progress: Optional[int] = None,
            keyword: Optional[str] = None,
            title: Optional[str] = None
        ):
            state = self.store.state

            if step is not None:
                new_step = step if isinstance(step, PipelineStep) else PipelineStep(step)
                if _can_advance(state.step, new_step):
                    state.step = new_step
                else:
                    self.logger.warning(
                        f"Run {run_id[:8]}: ignoring step {new_step.value} after {state.step.value}"
                    )
            if progress is not None:
                # Monotonic within a run, clamped to 0..100
                state.progress = max(state.progress, min(100, max(0, int(progress))))
            if keyword:
                state.keyword = keyword
            if title:
                state.title = title
            if message:
                self._log("info", message)

            self.hub.broadcast(ProgressEvent())

        return on_progress

    def _log(self, level: str, message: str):
        entry = self.hub.add_log(level, message)
        self.logger.log(_PYTHON_LOG_LEVELS[level], f"[PIPELINE] {message}")
        self.hub.broadcast(LogEvent(entry))

    # ------------------------------------------------------------------
    # Status & control
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """
        Get current pipeline status.

        Returns:
            Snapshot dictionary; a copy, safe to mutate
        """
        return self.store.snapshot()

    def reset_pipeline(self) -> Dict[str, Any]:
        """
        Force the state back to idle, whatever it is.

        Does not cancel a running task; it only releases the lock.
        """
        was_running = self.store.state.running
        self.store.clear()
        self.hub.broadcast(ResetEvent())
        if was_running:
            self.logger.warning("Pipeline reset while a run was in progress")
        else:
            self.logger.info("Pipeline state reset")
        return {"reset": True, "wasRunning": was_running}

    @property
    def current_task(self) -> Optional[asyncio.Task]:
        return self._run_task

    async def wait_for_completion(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for the most recent run task to finish.

        Raises:
            asyncio.TimeoutError: If timeout elapses first (the run keeps going)
        """
        task = self._run_task
        if task is not None and not task.done():
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return self.get_status()

    def subscribe(self, listener: Listener) -> Subscription:
        return self.hub.subscribe(listener)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.hub.unsubscribe(subscription)
