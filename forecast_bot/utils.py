"""
Utility Functions for the Forecast Bot
"""

import os
import logging
from datetime import datetime

import pytz

logger = logging.getLogger('forecast_bot.utils')


def fixed_offset(offset_hours):
    """
    Fixed UTC offset tzinfo for the given number of hours.

    Deliberately a constant offset (pytz.FixedOffset), not a zone name:
    the session window never consults the timezone database.
    """
    return pytz.FixedOffset(int(round(offset_hours * 60)))


def now_in_offset(offset_hours, now=None):
    """Current time (or `now`, converted) in the fixed offset."""
    tz = fixed_offset(offset_hours)
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(tz)


def format_epoch(timestamp, offset_hours):
    """Render epoch seconds as 'YYYY-MM-DD HH:MM' in the fixed offset."""
    dt = datetime.fromtimestamp(timestamp, fixed_offset(offset_hours))
    sign = '+' if offset_hours >= 0 else '-'
    hours = abs(offset_hours)
    return f"{dt:%Y-%m-%d %H:%M} (UTC{sign}{hours:g})"


def format_number(value):
    """Format a price with thousands separators"""
    if value is None:
        return "N/A"
    return f"{value:,.2f}"


def setup_logging(log_level='INFO', log_file='logs/forecast_bot.log'):
    """Configure logging for the bot"""
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    # One line per submitted amount, kept apart from the chatty main log
    submission_logger = logging.getLogger('submissions')
    submission_handler = logging.FileHandler(os.path.join(log_dir or '.', 'submissions.log'))
    submission_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
    submission_logger.addHandler(submission_handler)

    return logging.getLogger('forecast_bot')


def log_submission(symbol, price, amount, outcome):
    """Log a submission attempt to the submissions log"""
    submission_logger = logging.getLogger('submissions')
    submission_logger.info(f"{outcome} | {symbol} | {price:.2f} | {amount}")
