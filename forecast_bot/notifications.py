"""
Run outcome notifications.

One message per run. With a Discord webhook configured the message is
posted there; without one it only goes to the log. Delivery problems are
logged and never fail the run.
"""

import logging
from typing import Optional

import httpx

from forecast_bot.config import Settings
from forecast_bot.pricing import FormattedAmount, ResolvedPrice
from forecast_bot.utils import format_epoch, format_number

logger = logging.getLogger('forecast_bot.notifications')

DISCORD_MESSAGE_LIMIT = 2000


class NotificationSink:
    """Log-only sink. Subclasses add a real destination."""

    def send(self, message: str) -> bool:
        logger.info(f"Notification:\n{message}")
        return True


class DiscordNotifier(NotificationSink):
    """Posts to a Discord incoming webhook."""

    def __init__(self, webhook_url: str, client: httpx.Client = None, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.client = client
        self.timeout = timeout

    def send(self, message: str) -> bool:
        super().send(message)
        client = self.client or httpx.Client(timeout=self.timeout)
        try:
            resp = client.post(self.webhook_url, json={"content": message[:DISCORD_MESSAGE_LIMIT]})
            resp.raise_for_status()
            logger.info("Discord notification sent")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Discord notification failed (non-critical): {e}")
            return False
        finally:
            if self.client is None:
                client.close()


def create_notifier(settings: Settings, client: httpx.Client = None) -> NotificationSink:
    """Discord when a webhook is configured, otherwise log-only."""
    if settings.discord_webhook_url:
        return DiscordNotifier(settings.discord_webhook_url, client=client)
    logger.debug("No webhook configured - notifications are log-only")
    return NotificationSink()


def format_success_message(settings: Settings, resolved: ResolvedPrice,
                           amount: FormattedAmount, ambiguous: bool = False,
                           dry_run: bool = False) -> str:
    lines = [
        f"✅ Forecast {'prepared (dry run)' if dry_run else 'submitted'}: {amount}",
        f"Symbol: {settings.symbol}",
        f"Price: {format_number(resolved.price)} at "
        f"{format_epoch(resolved.timestamp, settings.utc_offset_hours)}",
    ]
    if not resolved.in_window:
        lines.append("Note: no price inside the session window - used the latest available")
    if ambiguous:
        lines.append("Note: confirmation text not found on the result page")
    return "\n".join(lines)


def format_failure_message(settings: Settings, stage: Optional[str], cause: str,
                           amount: Optional[FormattedAmount] = None) -> str:
    lines = [
        f"❌ Forecast submission failed{f' at {stage}' if stage else ''}",
        f"Symbol: {settings.symbol}",
        f"Cause: {cause}",
    ]
    if amount is not None:
        lines.append(f"Attempted amount: {amount}")
    return "\n".join(lines)
