"""
Forecast Site Browser Automation

Uses Playwright to own exactly one browser session and one page per
run. The session is opened by entering ForecastSiteBot as a context
manager and is always closed on the way out, exceptions included.

Also home to the DiagnosticSink (screenshot + HTML dump on failure) and
the human-like input helper the form needs: the site only enables its
submit control after real key events, so values are typed, never
assigned.
"""

import os
import logging
from datetime import datetime
from typing import List, Optional

from playwright.sync_api import sync_playwright, Browser, BrowserContext, Locator, Page

from forecast_bot.config import DEFAULT_TIMEOUT, Settings
from forecast_bot.exceptions import SubmissionError

logger = logging.getLogger('forecast_bot.browser')

USER_AGENT = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
              '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36')


def human_type(locator: Locator, value: str, delay_ms: int, secret: bool = False):
    """
    Replace a field's content the way a person would.

    click -> select all (Ctrl or Cmd) -> delete -> keystroke-paced typing,
    then read the value back. A mismatch raises rather than submitting the
    wrong number.
    """
    locator.click()
    locator.press("ControlOrMeta+a")
    locator.press("Delete")
    locator.press_sequentially(value, delay=delay_ms)

    actual = locator.input_value()
    if actual != value:
        shown = "***" if secret else repr(actual)
        raise SubmissionError(f"Field value mismatch after typing: got {shown}")
    logger.debug(f"Typed {'***' if secret else repr(value)}")


class DiagnosticSink:
    """
    Writes a full-page screenshot and the rendered HTML for a label.

    Best-effort: any failure is logged and swallowed so it can never mask
    the error that triggered the capture.
    """

    def __init__(self, directory: str = "logs"):
        self.directory = directory
        self.captured: List[str] = []

    def capture(self, page: Optional[Page], label: str) -> List[str]:
        """
        Capture page state under `label`.

        Returns:
            Paths actually written (possibly empty)
        """
        if page is None:
            logger.warning(f"Diagnostic capture '{label}' skipped: no page")
            return []

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        base = os.path.join(self.directory, f"{label}_{timestamp}")
        written = []

        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            logger.warning(f"Diagnostic directory unavailable ({self.directory}): {e}")
            return []

        try:
            page.screenshot(path=f"{base}.png", full_page=True)
            written.append(f"{base}.png")
            logger.info(f"Screenshot saved: {base}.png")
        except Exception as e:
            logger.warning(f"Screenshot failed for '{label}': {e}")

        try:
            html = page.content()
            with open(f"{base}.html", "w", encoding="utf-8") as f:
                f.write(html)
            written.append(f"{base}.html")
            logger.info(f"HTML dump saved: {base}.html")
        except Exception as e:
            logger.warning(f"HTML dump failed for '{label}': {e}")

        self.captured.extend(written)
        return written


class ForecastSiteBot:
    """
    Browser session for the forecast site.

    Usage:
        with ForecastSiteBot(settings) as bot:
            pipeline = SubmissionPipeline(bot.page, settings)
            ...
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.headless = settings.headless

        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def start_browser(self):
        """Start a fresh (non-persistent) browser, context and page."""
        logger.info(f"Starting browser (headless={self.headless})...")

        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(
            headless=self.headless,
            slow_mo=self.settings.slow_mo,
        )
        self.context = self.browser.new_context(
            viewport={'width': 1280, 'height': 900},
            user_agent=USER_AGENT,
            locale='ja-JP',
        )
        self.page = self.context.new_page()
        self.page.set_default_timeout(DEFAULT_TIMEOUT)
        self.page.set_default_navigation_timeout(self.settings.page_load_timeout_ms)

        logger.info("Browser started successfully")
        return self.page

    def close(self):
        """Release page, context, browser and driver. Never raises."""
        logger.info("Closing browser...")
        for name in ("page", "context", "browser"):
            resource = getattr(self, name)
            if resource is not None:
                try:
                    resource.close()
                except Exception as e:
                    logger.debug(f"Error closing {name}: {e}")
                setattr(self, name, None)
        if self.playwright is not None:
            try:
                self.playwright.stop()
            except Exception as e:
                logger.debug(f"Error stopping playwright: {e}")
            self.playwright = None
        logger.info("Browser closed")

    def __enter__(self):
        try:
            self.start_browser()
        except Exception:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
