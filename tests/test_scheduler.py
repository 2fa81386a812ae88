"""Tests for the daily scheduler wiring."""

from datetime import datetime, time as dt_time

import pytest
import schedule

from forecast_bot import scheduler
from forecast_bot.config import Settings
from forecast_bot.utils import fixed_offset


@pytest.fixture(autouse=True)
def clear_jobs():
    schedule.clear()
    yield
    schedule.clear()


class TestOffsetToLocalTime:
    def test_matches_local_conversion(self):
        now = datetime(2026, 10, 16, 3, 0, tzinfo=fixed_offset(9))
        expected = datetime(2026, 10, 16, 7, 0, tzinfo=fixed_offset(9)).astimezone().strftime("%H:%M")

        assert scheduler.offset_to_local_time(7, 0, 9, now=now) == expected


class TestScheduleDaily:
    def test_registers_one_daily_job(self):
        job = scheduler.schedule_daily(Settings(run_time=dt_time(7, 0)), dry_run=True)

        assert schedule.get_jobs() == [job]
        assert job.unit == "days"
        assert job.job_func.args[1] is True


class TestSafeExecute:
    def test_errors_are_contained(self, monkeypatch):
        def explode(settings, dry_run=False):
            raise RuntimeError("boom")

        monkeypatch.setattr(scheduler, "execute_run", explode)

        assert scheduler.safe_execute(Settings()) == 1

    def test_status_is_passed_through(self, monkeypatch):
        monkeypatch.setattr(scheduler, "execute_run", lambda settings, dry_run=False: 0)

        assert scheduler.safe_execute(Settings()) == 0
