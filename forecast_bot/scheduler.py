"""
Task Scheduler for the Forecast Bot

Triggers one forecast run per day at Settings.run_time, expressed in
the fixed civil offset (default UTC+9).

CRITICAL: The schedule library uses LOCAL machine time, not timezone-aware
times. This module converts the fixed-offset time to local machine time.

Jobs run in this thread, one after another, so two runs never overlap.
"""

import time
import logging
import traceback
from datetime import datetime

import schedule

from forecast_bot.config import Settings
from forecast_bot.daily_routine import execute_run
from forecast_bot.utils import now_in_offset

logger = logging.getLogger('forecast_bot.scheduler')

CHECK_INTERVAL_SECONDS = 30


def offset_to_local_time(hour: int, minute: int, offset_hours: float, now: datetime = None) -> str:
    """
    Convert a civil time in the fixed offset to local machine time.

    Args:
        hour: Hour in the fixed offset (0-23)
        minute: Minute (0-59)
        offset_hours: The fixed UTC offset
        now: Reference instant (timezone-aware), defaults to the wall clock

    Returns:
        String in HH:MM format for local time
    """
    now_offset = now_in_offset(offset_hours, now)
    target = now_offset.replace(hour=hour, minute=minute, second=0, microsecond=0)
    target_local = target.astimezone().replace(tzinfo=None)
    local_time_str = target_local.strftime("%H:%M")

    logger.debug(f"UTC{offset_hours:+g} {hour:02d}:{minute:02d} -> Local {local_time_str}")
    return local_time_str


def safe_execute(settings: Settings, dry_run: bool = False) -> int:
    """
    Wrapper for execute_run that never lets an error kill the scheduler.
    """
    logger.info(f"Scheduled execution triggered at {now_in_offset(settings.utc_offset_hours)}")
    try:
        return execute_run(settings, dry_run=dry_run)
    except Exception as e:
        logger.critical(f"Execution failed: {e}")
        logger.critical(traceback.format_exc())
        return 1


def schedule_daily(settings: Settings, dry_run: bool = False) -> schedule.Job:
    """Register the daily job and return it."""
    run_at = settings.run_time
    local_time = offset_to_local_time(run_at.hour, run_at.minute, settings.utc_offset_hours)
    logger.info(f"Run time: {run_at:%H:%M} UTC{settings.utc_offset_hours:+g} = {local_time} local")
    return schedule.every().day.at(local_time).do(safe_execute, settings, dry_run)


def run_scheduler(settings: Settings, dry_run: bool = False):
    """
    Main scheduling loop. Blocks until Ctrl+C.
    """
    logger.info("=" * 60)
    logger.info("FORECAST BOT SCHEDULER STARTING")
    logger.info(f"Current time (UTC{settings.utc_offset_hours:+g}): "
                f"{now_in_offset(settings.utc_offset_hours)}")
    logger.info(f"Current time (Local): {datetime.now()}")
    logger.info("=" * 60)

    schedule.clear()
    job = schedule_daily(settings, dry_run=dry_run)
    logger.info(f"Scheduled job: {job}")
    logger.info(f"Next run: {job.next_run}")
    logger.info("Bot is running. Press Ctrl+C to stop.")

    while True:
        try:
            schedule.run_pending()
            time.sleep(CHECK_INTERVAL_SECONDS)
        except KeyboardInterrupt:
            logger.info("Scheduler stopped by user")
            break
        except Exception as e:
            logger.error(f"Scheduler error: {e}")
            time.sleep(CHECK_INTERVAL_SECONDS)
