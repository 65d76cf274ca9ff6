"""
Shared fixtures for the orchestrator tests
"""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest
import pytz

from autoposter.config import AppConfig
from autoposter.orchestrator import PipelineOrchestrator
from autoposter.settings import SettingsStore
from autoposter.stages import StageResult

TOKYO = pytz.timezone("Asia/Tokyo")


def tokyo(year, month, day, hour=0, minute=0, second=0) -> datetime:
    return TOKYO.localize(datetime(year, month, day, hour, minute, second))


class FakeClock:
    """Settable clock; call it to read the time"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


class ScriptedStages:
    """
    Stage sequence double.

    Reports the given steps, then waits until release() before returning
    result (or raising error).
    """

    def __init__(self, result=None, error=None, steps=(), wait=True):
        self.result = result if result is not None else StageResult(success=True, title="Test article", elapsed=1.5)
        self.error = error
        self.steps = list(steps)
        self.calls = []
        self._wait = wait
        self._release = asyncio.Event()

    def release(self):
        self._release.set()

    async def __call__(self, options, on_progress):
        self.calls.append(options)
        for step in self.steps:
            on_progress(**step)
        if self._wait:
            await self._release.wait()
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    return tmp_path


@pytest.fixture
def config(temp_dir) -> AppConfig:
    """Config for testing (scheduler loop off, short keep-alive)"""
    return AppConfig(
        root=temp_dir,
        settings_file=temp_dir / "data" / "settings.json",
        logs_dir=temp_dir / "logs",
        keepalive_sec=1,
        shutdown_grace_sec=1,
        scheduler_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    # Monday
    return FakeClock(tokyo(2024, 6, 3, 9, 0, 0))


@pytest.fixture
def settings(config) -> SettingsStore:
    return SettingsStore(config.settings_file, logger=Mock())


@pytest.fixture
def make_orchestrator(config, settings, clock):
    """Factory: orchestrator around a given stage sequence"""
    def _make(stage_sequence=None, logger=None):
        return PipelineOrchestrator(
            config=config,
            stage_sequence=stage_sequence or ScriptedStages(wait=False),
            settings=settings,
            clock=clock,
            logger=logger or Mock()
        )
    return _make
