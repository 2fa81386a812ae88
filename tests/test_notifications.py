"""Tests for run outcome notifications."""

import json

import httpx

from forecast_bot.config import Settings
from forecast_bot.notifications import (
    DiscordNotifier, NotificationSink, create_notifier,
    format_failure_message, format_success_message
)
from forecast_bot.pricing import FormattedAmount, ResolvedPrice

WEBHOOK = "https://discord.test/api/webhooks/1/abc"


def mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestDiscordNotifier:
    def test_posts_content(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        sent = DiscordNotifier(WEBHOOK, client=mock_client(handler)).send("hello")

        assert sent is True
        assert str(seen[0].url) == WEBHOOK
        assert json.loads(seen[0].content) == {"content": "hello"}

    def test_long_messages_are_truncated(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        DiscordNotifier(WEBHOOK, client=mock_client(handler)).send("x" * 5000)

        assert len(seen[0]["content"]) == 2000

    def test_http_failure_is_not_raised(self):
        notifier = DiscordNotifier(WEBHOOK, client=mock_client(lambda r: httpx.Response(500)))

        assert notifier.send("hello") is False


class TestCreateNotifier:
    def test_log_only_without_webhook(self):
        notifier = create_notifier(Settings())

        assert type(notifier) is NotificationSink
        assert notifier.send("hello") is True

    def test_discord_with_webhook(self):
        notifier = create_notifier(Settings(discord_webhook_url=WEBHOOK))

        assert isinstance(notifier, DiscordNotifier)


class TestMessages:
    def test_success_message(self):
        message = format_success_message(
            Settings(), ResolvedPrice(50320.5, 1_760_565_300, in_window=False),
            FormattedAmount(50320, 50), ambiguous=True
        )

        assert "submitted: 50320.50" in message
        assert "NIY=F" in message
        assert "latest available" in message
        assert "confirmation text not found" in message

    def test_failure_message(self):
        message = format_failure_message(Settings(), "Fill", "element not found: major amount input",
                                         FormattedAmount(38000, 7))

        assert "failed at Fill" in message
        assert "38000.07" in message
