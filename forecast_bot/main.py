#!/usr/bin/env python3
"""
Forecast Bot

Resolves one price from the configured quote feed and submits it to the
forecast site as a (major, minor) amount.

Usage:
    forecast-bot                  # Run once now, exit with the run's status
    forecast-bot --price-only     # Fetch, select and format; no browser
    forecast-bot --dry-run        # Full run, stop before clicking submit
    forecast-bot --schedule       # Run every day at FORECAST_RUN_TIME

Exit status is 0 on success and 1 on any failure.
"""

import argparse
import logging
import sys
from datetime import datetime

from forecast_bot.config import PROVIDERS, Settings
from forecast_bot.daily_routine import EXIT_FAILURE, EXIT_SUCCESS, execute_run, resolve_price
from forecast_bot.exceptions import ForecastBotError
from forecast_bot.utils import format_epoch, format_number, setup_logging


def price_only_mode(settings: Settings) -> int:
    """Print the price the bot would submit."""
    plan = resolve_price(settings)

    print("\n" + "=" * 60)
    print(f"Symbol:    {settings.symbol} ({settings.provider})")
    print(f"Price:     {format_number(plan.resolved.price)}")
    print(f"Sampled:   {format_epoch(plan.resolved.timestamp, settings.utc_offset_hours)}"
          f"{'' if plan.resolved.in_window else '  [outside session window]'}")
    print(f"Amount:    major={plan.amount.major_text} minor={plan.amount.minor_text}")
    print("=" * 60)
    return EXIT_SUCCESS


def scheduler_mode(settings: Settings, dry_run: bool) -> int:
    from forecast_bot.scheduler import run_scheduler

    run_scheduler(settings, dry_run=dry_run)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Forecast Bot - resolve a price and submit it to the forecast site',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--price-only', action='store_true',
                      help='Resolve and print the price without opening a browser')
    mode.add_argument('--schedule', action='store_true',
                      help='Run daily at FORECAST_RUN_TIME until stopped')

    parser.add_argument('--dry-run', action='store_true',
                        help='Fill the form but do not click submit')
    parser.add_argument('--symbol', help='Quote symbol (overrides FORECAST_SYMBOL)')
    parser.add_argument('--provider', choices=PROVIDERS,
                        help='Quote provider (overrides FORECAST_PROVIDER)')
    parser.add_argument('--round-unit', type=float,
                        help='Round the price to this unit before formatting (e.g. 10)')
    parser.add_argument('--show-browser', action='store_true',
                        help='Run the browser with a visible window')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    return parser


def get_mode_name(args) -> str:
    """Get human-readable mode name."""
    if args.price_only:
        return "PRICE-ONLY"
    if args.schedule:
        return "SCHEDULER" + (" (DRY RUN)" if args.dry_run else "")
    return "RUN-ONCE" + (" (DRY RUN)" if args.dry_run else "")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level)

    logger.info("=" * 60)
    logger.info("FORECAST BOT")
    logger.info(f"Started: {datetime.now()}")
    logger.info(f"Mode: {get_mode_name(args)}")
    logger.info("=" * 60)

    try:
        settings = Settings.from_env().with_overrides(
            symbol=args.symbol,
            provider=args.provider,
            round_unit=args.round_unit,
            headless=False if args.show_browser else None,
        )

        if args.price_only:
            return price_only_mode(settings)
        if args.schedule:
            return scheduler_mode(settings, args.dry_run)
        return execute_run(settings, dry_run=args.dry_run)

    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
        return EXIT_FAILURE

    except ForecastBotError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FAILURE

    except Exception as e:
        logger.critical(f"Fatal error: {e}")
        import traceback
        logger.critical(traceback.format_exc())
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
