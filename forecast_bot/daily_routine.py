"""
Daily Forecast Routine

One run, start to finish:

1. Fetch the series (no browser yet)
2. Build the session window and select the price
3. Format it into (major, minor)
4. Open one browser session, run the submission pipeline, close it
5. Notify and return an exit status

Any price resolution error ends the run before a browser is opened, so
nothing is ever submitted without a resolved price.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from forecast_bot.config import Settings
from forecast_bot.exceptions import ConfigurationError, PriceResolutionError
from forecast_bot.forecast_site import DiagnosticSink, ForecastSiteBot
from forecast_bot.market_data import SeriesClient, fetch_for_settings
from forecast_bot.notifications import (
    NotificationSink, create_notifier, format_failure_message, format_success_message
)
from forecast_bot.pricing import (
    FormattedAmount, ResolvedPrice, TimeWindow, build_session_window,
    format_price, round_to_unit, select_in_window
)
from forecast_bot.submission_pipeline import SubmissionOutcome, SubmissionPipeline
from forecast_bot.utils import format_epoch, format_number, log_submission

logger = logging.getLogger('forecast_bot.daily_routine')

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


@dataclass(frozen=True)
class PricePlan:
    """Everything decided before the browser opens."""
    window: TimeWindow
    resolved: ResolvedPrice
    amount: FormattedAmount


def resolve_price(settings: Settings, now: datetime = None,
                  series_client: SeriesClient = None) -> PricePlan:
    """
    Fetch, select and format the price for this run.

    Raises:
        PriceResolutionError: any fetch / selection failure
    """
    series = fetch_for_settings(settings, series_client=series_client)

    window = build_session_window(now, settings.utc_offset_hours,
                                  settings.session_start, settings.session_end)
    resolved = select_in_window(series, window)
    logger.info(f"Resolved price {format_number(resolved.price)} at "
                f"{format_epoch(resolved.timestamp, settings.utc_offset_hours)}"
                f"{'' if resolved.in_window else ' (outside window)'}")

    price = resolved.price
    if settings.round_unit:
        price = round_to_unit(price, settings.round_unit)
        logger.info(f"Rounded to unit {settings.round_unit:g}: {price}")

    amount = format_price(price)
    logger.info(f"Formatted amount: major={amount.major_text} minor={amount.minor_text}")
    return PricePlan(window=window, resolved=resolved, amount=amount)


def submit_amount(settings: Settings, amount: FormattedAmount, dry_run: bool = False,
                  bot_factory: Callable[[Settings], ForecastSiteBot] = ForecastSiteBot) -> SubmissionOutcome:
    """Open one browser session, run the pipeline once, always close."""
    with bot_factory(settings) as bot:
        pipeline = SubmissionPipeline(bot.page, settings,
                                      DiagnosticSink(settings.diagnostics_dir),
                                      dry_run=dry_run)
        return pipeline.execute(amount)


def execute_run(settings: Settings, dry_run: bool = False, now: datetime = None,
                series_client: SeriesClient = None,
                bot_factory: Callable[[Settings], ForecastSiteBot] = ForecastSiteBot,
                notifier: Optional[NotificationSink] = None) -> int:
    """
    Main run - called once per trigger (CLI or scheduler).

    Returns:
        EXIT_SUCCESS or EXIT_FAILURE
    """
    notifier = notifier or create_notifier(settings)

    logger.info("=" * 60)
    logger.info(f"FORECAST RUN START: {settings.symbol} via {settings.provider}"
                f"{' (DRY RUN)' if dry_run else ''}")
    logger.info("=" * 60)

    try:
        settings.require_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        notifier.send(format_failure_message(settings, None, f"configuration: {e}"))
        return EXIT_FAILURE

    try:
        plan = resolve_price(settings, now=now, series_client=series_client)
    except PriceResolutionError as e:
        logger.error(f"Price resolution failed - no submission attempted: {e}")
        notifier.send(format_failure_message(settings, None, f"{type(e).__name__}: {e}"))
        return EXIT_FAILURE

    try:
        outcome = submit_amount(settings, plan.amount, dry_run=dry_run, bot_factory=bot_factory)
    except Exception as e:
        # Browser could not be started or torn down; the pipeline itself never raises
        logger.error(f"Browser session error: {e}")
        notifier.send(format_failure_message(settings, None, f"browser: {e}", plan.amount))
        return EXIT_FAILURE

    log_submission(settings.symbol, plan.resolved.price, plan.amount, outcome.label)

    if outcome.success:
        notifier.send(format_success_message(settings, plan.resolved, plan.amount,
                                             ambiguous=outcome.ambiguous_confirmation,
                                             dry_run=outcome.dry_run))
        logger.info(f"FORECAST RUN COMPLETED: {outcome.label}")
        return EXIT_SUCCESS

    notifier.send(format_failure_message(settings, outcome.stage.value, outcome.cause, plan.amount))
    logger.error(f"FORECAST RUN FAILED: {outcome.label}: {outcome.cause}")
    return EXIT_FAILURE
