"""
Tests for cron matching helpers and the ScheduleEvaluator
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from autoposter.orchestrator import ConflictError, ValidationError
from autoposter.orchestrator.scheduler import (
    ScheduleEvaluator,
    build_cron,
    cron_day_of_week,
    describe_cron,
    match_field,
    parse_cron_expression,
    run_key,
    should_run,
    split_schedule,
    validate_schedule,
)
from conftest import tokyo


class TestMatchField:

    @pytest.mark.parametrize("value", [0, 7, 23, 59, 1000, -1])
    def test_star_matches_everything(self, value):
        assert match_field("*", value) is True

    def test_comma_list(self):
        assert match_field("7,20", 7) is True
        assert match_field("7,20", 20) is True
        assert match_field("7,20", 8) is False

    def test_range_is_inclusive(self):
        assert match_field("1-5", 1) is True
        assert match_field("1-5", 3) is True
        assert match_field("1-5", 5) is True
        assert match_field("1-5", 6) is False
        assert match_field("1-5", 0) is False

    def test_mixed_list_and_range(self):
        assert match_field("0,10-12", 0) is True
        assert match_field("0,10-12", 11) is True
        assert match_field("0,10-12", 9) is False

    def test_non_integer_parts_never_match(self):
        assert match_field("a", 0) is False
        assert match_field("*/5", 5) is False
        assert match_field("x-3", 2) is False
        assert match_field("x,4", 4) is True


class TestShouldRun:

    def test_matches_minute_hour_and_day_of_week(self):
        assert should_run("0 9 * * *", 0, 9, 1) is True
        assert should_run("0 9 * * *", 1, 9, 1) is False
        assert should_run("30 7 * * 1-5", 30, 7, 0) is False
        assert should_run("30 7 * * 1-5", 30, 7, 5) is True

    def test_day_of_month_and_month_are_ignored(self):
        assert should_run("0 9 31 2 *", 0, 9, 3) is True

    def test_malformed_never_matches(self):
        assert should_run("0 9 * *", 0, 9, 1) is False
        assert should_run("", 0, 9, 1) is False
        assert should_run("0 9 * * * *", 0, 9, 1) is False

    def test_is_pure(self):
        inputs = ("0 7,20 * * *", 0, 20, 4)
        results = {should_run(*inputs) for _ in range(10)}
        assert results == {True}


class TestScheduleHelpers:

    def test_split_schedule(self):
        assert split_schedule("0 9 * * *; 0 20 * * * ;;") == ["0 9 * * *", "0 20 * * *"]
        assert split_schedule("") == []
        assert split_schedule(None) == []

    def test_parse_keeps_all_fields(self):
        cron = parse_cron_expression("15 8 1 12 0")
        assert (cron.minute, cron.hour, cron.day_of_month, cron.month, cron.day_of_week) == (
            "15", "8", "1", "12", "0"
        )

    def test_parse_rejects_wrong_field_count(self):
        with pytest.raises(ValidationError, match="expected 5 fields"):
            parse_cron_expression("0 9 * *")

    def test_validate_schedule(self):
        assert validate_schedule("0 9 * * *;0 20 * * 1-5") == ["0 9 * * *", "0 20 * * 1-5"]

    @pytest.mark.parametrize("schedule", ["", " ; ", "0 9 * *", "0 9x * * *", "*/5 * * * *", "0 9 * * mon"])
    def test_validate_schedule_rejects(self, schedule):
        with pytest.raises(ValidationError):
            validate_schedule(schedule)

    def test_build_cron(self):
        assert build_cron("daily1", 9) == "0 9 * * *"
        assert build_cron("daily2", 20, 7) == "0 7,20 * * *"
        assert build_cron("weekday", 8) == "0 8 * * 1-5"
        assert build_cron("daily1", 30) == "0 23 * * *"
        assert build_cron("daily2", 9) == "0 9,15 * * *"

    def test_describe_cron(self):
        assert describe_cron("0 9,20 * * *;30 7 * * 1-5") == "Every day 9:00 and 20:00 / Weekdays 7:30"
        assert describe_cron("0 9 * * 0,6") == "Day-of-week 0,6 9:00"
        assert describe_cron("") == "Not scheduled"
        assert describe_cron("bogus") == "bogus"

    def test_cron_day_of_week_is_sunday_zero(self):
        assert cron_day_of_week(tokyo(2024, 6, 2)) == 0   # Sunday
        assert cron_day_of_week(tokyo(2024, 6, 3)) == 1   # Monday
        assert cron_day_of_week(tokyo(2024, 6, 8)) == 6   # Saturday

    def test_run_key(self):
        assert run_key(tokyo(2024, 6, 3, 9, 5)) == "2024-6-3-9-5"


class TestScheduleEvaluator:

    @pytest.fixture
    def orchestrator(self):
        orchestrator = Mock()
        orchestrator.get_status.return_value = {"running": False}
        orchestrator.start_pipeline = AsyncMock(return_value="run-1")
        return orchestrator

    @pytest.fixture
    def logger(self):
        return Mock()

    @pytest.fixture
    def evaluator(self, orchestrator, settings, logger):
        return ScheduleEvaluator(orchestrator=orchestrator, settings=settings, logger=logger)

    @pytest.mark.asyncio
    async def test_fires_on_matching_minute(self, evaluator, orchestrator):
        # Monday 09:00 with the default "0 9 * * *"
        fired = await evaluator.tick(tokyo(2024, 6, 3, 9, 0))

        assert fired is True
        orchestrator.start_pipeline.assert_awaited_once_with(dry_run=False)
        assert evaluator.last_run_key == "2024-6-3-9-0"

    @pytest.mark.asyncio
    async def test_same_minute_fires_once(self, evaluator, orchestrator):
        await evaluator.tick(tokyo(2024, 6, 3, 9, 0, 0))
        await evaluator.tick(tokyo(2024, 6, 3, 9, 0, 30))

        assert orchestrator.start_pipeline.await_count == 1

    @pytest.mark.asyncio
    async def test_multiple_hours(self, evaluator, orchestrator, settings):
        settings.update("posting.cronSchedule", "0 7,20 * * *")

        assert await evaluator.tick(tokyo(2024, 6, 3, 20, 0)) is True
        assert await evaluator.tick(tokyo(2024, 6, 3, 20, 1)) is False
        assert orchestrator.start_pipeline.await_count == 1

    @pytest.mark.asyncio
    async def test_no_match(self, evaluator, orchestrator):
        assert await evaluator.tick(tokyo(2024, 6, 3, 8, 59)) is False
        orchestrator.start_pipeline.assert_not_awaited()
        assert evaluator.last_run_key is None

    @pytest.mark.asyncio
    async def test_weekday_schedule_skips_sunday(self, evaluator, orchestrator, settings):
        settings.update("posting.cronSchedule", "0 9 * * 1-5")

        assert await evaluator.tick(tokyo(2024, 6, 2, 9, 0)) is False
        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0)) is True

    @pytest.mark.asyncio
    async def test_skips_while_running_without_consuming_minute(self, evaluator, orchestrator, logger):
        orchestrator.get_status.return_value = {"running": True}

        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0, 0)) is False
        assert evaluator.last_run_key is None
        orchestrator.start_pipeline.assert_not_awaited()
        logger.info.assert_called()

        # Same minute, run finished in between
        orchestrator.get_status.return_value = {"running": False}
        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0, 40)) is True

    @pytest.mark.asyncio
    async def test_dry_run_setting_is_passed(self, evaluator, orchestrator, settings):
        settings.update("posting.dryRun", "true")

        await evaluator.tick(tokyo(2024, 6, 3, 9, 0))

        orchestrator.start_pipeline.assert_awaited_once_with(dry_run=True)

    @pytest.mark.asyncio
    async def test_schedule_change_applies_on_next_tick(self, evaluator, orchestrator, settings):
        assert await evaluator.tick(tokyo(2024, 6, 3, 10, 30)) is False

        settings.update("posting.cronSchedule", "31 10 * * *")
        assert await evaluator.tick(tokyo(2024, 6, 3, 10, 31)) is True

    @pytest.mark.asyncio
    async def test_empty_schedule_falls_back_to_default(self, evaluator, orchestrator, settings):
        settings.update("posting.cronSchedule", "")

        assert evaluator.read_schedule() == "0 9 * * *"
        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0)) is True

    @pytest.mark.asyncio
    async def test_conflict_is_logged_not_raised(self, evaluator, orchestrator, logger):
        orchestrator.start_pipeline.side_effect = ConflictError("Pipeline is already running")

        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0)) is False
        logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_settings_failure_is_logged_not_raised(self, orchestrator, logger):
        settings = Mock()
        settings.get.side_effect = OSError("disk gone")
        evaluator = ScheduleEvaluator(orchestrator=orchestrator, settings=settings, logger=logger)

        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0)) is False
        logger.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_malformed_expression_warned_once(self, evaluator, orchestrator, settings, logger):
        settings.update("posting.cronSchedule", "0 9 * *;0 9 * * *")

        assert await evaluator.tick(tokyo(2024, 6, 3, 9, 0)) is True
        await evaluator.tick(tokyo(2024, 6, 3, 9, 1))
        await evaluator.tick(tokyo(2024, 6, 3, 9, 2))

        warnings = [c for c in logger.warning.call_args_list if "0 9 * *" in c[0][0]]
        assert len(warnings) == 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_cancels(self, evaluator):
        await evaluator.start()
        task = evaluator._tick_task
        await evaluator.start()

        assert evaluator._tick_task is task
        assert evaluator.is_running is True

        await evaluator.stop()
        assert evaluator.is_running is False
        assert task.done()

    @pytest.mark.asyncio
    async def test_loop_ticks_on_interval(self, orchestrator, settings, logger):
        clock = Mock(return_value=tokyo(2024, 6, 3, 9, 0))
        evaluator = ScheduleEvaluator(
            orchestrator=orchestrator,
            settings=settings,
            tick_interval_sec=0.01,
            clock=clock,
            logger=logger
        )

        await evaluator.start()
        await asyncio.sleep(0.1)
        await evaluator.stop()

        assert clock.call_count >= 2
        orchestrator.start_pipeline.assert_awaited_once_with(dry_run=False)

    def test_single_evaluator_per_orchestrator(self, make_orchestrator):
        orchestrator = make_orchestrator()
        assert isinstance(orchestrator.scheduler, ScheduleEvaluator)
        assert orchestrator.scheduler.orchestrator is orchestrator
