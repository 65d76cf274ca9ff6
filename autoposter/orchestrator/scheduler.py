"""
Scheduler - cron-like schedule matching and the periodic evaluator

Schedule format: one or more 5-field expressions joined with ';'
("0 9 * * *;0 20 * * *"). Fields are minute, hour, day-of-month, month,
day-of-week. Only minute, hour and day-of-week are matched; day-of-month
and month are parsed and then ignored.

Each field is '*', a comma list of integers, inclusive ranges 'a-b', or a
mix ("7,20", "1-5", "0,10-12").
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Set

from ..settings import DEFAULT_CRON_SCHEDULE
from .errors import ConflictError, ValidationError

_FIELD_PART = re.compile(r"^\d+(-\d+)?$")
_FIELD_NAMES = ("minute", "hour", "day-of-month", "month", "day-of-week")


@dataclass(frozen=True)
class CronExpression:
    """A parsed 5-field expression"""
    minute: str
    hour: str
    day_of_month: str  # not matched
    month: str  # not matched
    day_of_week: str

    def matches(self, minute: int, hour: int, dow: int) -> bool:
        return (
            match_field(self.minute, minute)
            and match_field(self.hour, hour)
            and match_field(self.day_of_week, dow)
        )


def match_field(field: str, value: int) -> bool:
    """
    Match one cron field against a value.

    '*' always matches. Otherwise each comma part is an equality test, or an
    inclusive range test when it contains '-'. Parts that are not integers
    never match.
    """
    if field == "*":
        return True
    for part in field.split(","):
        if "-" in part:
            start, _, end = part.partition("-")
            try:
                if int(start) <= value <= int(end):
                    return True
            except ValueError:
                continue
        else:
            try:
                if int(part) == value:
                    return True
            except ValueError:
                continue
    return False


def parse_cron_expression(expr: str) -> CronExpression:
    """
    Split an expression into its 5 fields.

    Raises:
        ValidationError: If the field count is not exactly 5
    """
    parts = expr.split()
    if len(parts) != 5:
        raise ValidationError(
            f"Invalid cron expression {expr!r}: expected 5 fields, got {len(parts)}"
        )
    return CronExpression(*parts)


def should_run(expr: str, minute: int, hour: int, dow: int) -> bool:
    """True if expr matches the given minute, hour and day-of-week (Sunday=0).
    Malformed expressions never match."""
    try:
        cron = parse_cron_expression(expr)
    except ValidationError:
        return False
    return cron.matches(minute, hour, dow)


def split_schedule(schedule: Optional[str]) -> List[str]:
    """';'-separated schedule -> list of trimmed, non-empty expressions"""
    if not schedule:
        return []
    return [s.strip() for s in schedule.split(";") if s.strip()]


def validate_schedule(schedule: str) -> List[str]:
    """
    Strict check used before a schedule is saved.

    Returns:
        The list of expressions

    Raises:
        ValidationError: On an empty schedule, a wrong field count, or a
            field that is not '*', integers, or ranges
    """
    expressions = split_schedule(schedule)
    if not expressions:
        raise ValidationError("Schedule is empty")
    for expr in expressions:
        cron = parse_cron_expression(expr)
        fields = (cron.minute, cron.hour, cron.day_of_month, cron.month, cron.day_of_week)
        for name, value in zip(_FIELD_NAMES, fields):
            if value == "*":
                continue
            if not all(_FIELD_PART.match(part) for part in value.split(",")):
                raise ValidationError(f"Invalid {name} field {value!r} in {expr!r}")
    return expressions


def build_cron(frequency: str, hour1: int, hour2: Optional[int] = None) -> str:
    """
    Simple choice -> cron expression.

    frequency: 'daily1' (once a day), 'daily2' (twice a day) or 'weekday'
    (Monday to Friday). Hours are clamped to 0..23.
    """
    def clamp(hour, default):
        try:
            return min(23, max(0, int(hour)))
        except (TypeError, ValueError):
            return default

    h1 = clamp(hour1, 0)
    if frequency == "daily2":
        h2 = clamp(hour2, 15)
        hours = ",".join(str(h) for h in sorted([h1, h2]))
        return f"0 {hours} * * *"
    if frequency == "weekday":
        return f"0 {h1} * * 1-5"
    return f"0 {h1} * * *"


def describe_cron(schedule: Optional[str]) -> str:
    """Human readable schedule, e.g. 'Every day 9:00 and 20:00 / Weekdays 7:30'"""
    expressions = split_schedule(schedule)
    if not expressions:
        return "Not scheduled"

    descriptions = []
    for expr in expressions:
        parts = expr.split()
        if len(parts) != 5:
            descriptions.append(expr)
            continue
        minute, hour, _, _, dow = parts
        times = " and ".join(f"{h}:{minute.zfill(2)}" for h in hour.split(","))
        if dow == "*":
            days = "Every day"
        elif dow == "1-5":
            days = "Weekdays"
        else:
            days = f"Day-of-week {dow}"
        descriptions.append(f"{days} {times}")
    return " / ".join(descriptions)


def cron_day_of_week(dt: datetime) -> int:
    """Sunday=0 .. Saturday=6 (datetime.weekday() is Monday=0)"""
    return (dt.weekday() + 1) % 7


def run_key(dt: datetime) -> str:
    """Minute-granularity key used to fire at most once per clock minute"""
    return f"{dt.year}-{dt.month}-{dt.day}-{dt.hour}-{dt.minute}"


class ScheduleEvaluator:
    """
    Periodic schedule check that decides whether to start a run.

    Constructed only by PipelineOrchestrator: a second evaluator would keep
    its own last_run_key and fire duplicate runs.
    """

    def __init__(
        self,
        orchestrator,
        settings,
        tick_interval_sec: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.orchestrator = orchestrator
        self.settings = settings
        self.tick_interval_sec = tick_interval_sec
        self.clock = clock or datetime.now
        self.logger = logger or logging.getLogger(__name__)

        self._last_run_key: Optional[str] = None
        self._reported_invalid: Set[str] = set()
        self._running = False
        self._tick_task: Optional[asyncio.Task] = None

    @property
    def last_run_key(self) -> Optional[str]:
        return self._last_run_key

    @property
    def is_running(self) -> bool:
        return self._running

    def read_schedule(self) -> str:
        # Empty string counts as unset
        return self.settings.get("posting.cronSchedule") or DEFAULT_CRON_SCHEDULE

    async def start(self):
        """Start the tick loop"""
        if self._running:
            return

        self._running = True
        schedule = self.read_schedule()
        self._tick_task = asyncio.create_task(self._tick_loop())
        self.logger.info(f"[SCHEDULER] Started: {schedule} ({describe_cron(schedule)})")
        self.logger.info(f"[SCHEDULER] Checking every {self.tick_interval_sec}s")

    async def stop(self):
        """Stop the tick loop"""
        self._running = False

        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

        self.logger.info("[SCHEDULER] Stopped")

    async def _tick_loop(self):
        while self._running:
            try:
                await asyncio.sleep(self.tick_interval_sec)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Never let the loop die
                self.logger.error(f"[SCHEDULER] Tick loop error: {e}", exc_info=True)

    async def tick(self, now: Optional[datetime] = None) -> bool:
        """
        Evaluate the schedule for the current minute.

        Returns:
            True if a run was started
        """
        now = now or self.clock()
        key = run_key(now)
        if key == self._last_run_key:
            return False

        try:
            expressions = split_schedule(self.read_schedule())
            self._report_invalid(expressions)

            dow = cron_day_of_week(now)
            if not any(should_run(expr, now.minute, now.hour, dow) for expr in expressions):
                return False

            if self.orchestrator.get_status()["running"]:
                # last_run_key stays put so a later minute can still fire
                self.logger.info("[SCHEDULER] Pipeline is running, skipping scheduled run")
                return False

            self._last_run_key = key
            dry_run = bool(self.settings.get("posting.dryRun", False))
            self.logger.info(
                f"[SCHEDULER] Scheduled run starting ({now.hour}:{now.minute:02d}, dry_run={dry_run})"
            )
            await self.orchestrator.start_pipeline(dry_run=dry_run)
            return True

        except ConflictError as e:
            self.logger.warning(f"[SCHEDULER] Scheduled run rejected: {e}")
            return False
        except Exception as e:
            self.logger.error(f"[SCHEDULER] Schedule check failed: {e}", exc_info=True)
            return False

    def _report_invalid(self, expressions: List[str]):
        """Warn once per malformed expression, not on every tick"""
        for expr in expressions:
            if expr in self._reported_invalid:
                continue
            try:
                parse_cron_expression(expr)
            except ValidationError as e:
                self._reported_invalid.add(expr)
                self.logger.warning(f"[SCHEDULER] {e}; it will never match")
