"""
Element resolution for the forecast site.

The site's DOM is outside our control and its selectors drift. Rather
than scattering try/except selector guesses through the flow, each
logical role ("login button", "major amount input") gets an ordered list
of Candidate descriptors, most specific first, generic fallback last.
ElementResolver probes them in order and returns the first visible one.
"""

import re
import time
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from playwright.sync_api import Error as PlaywrightError, Locator, Page

from forecast_bot.config import RESOLVE_POLL_INTERVAL
from forecast_bot.exceptions import ElementNotFoundError

logger = logging.getLogger('forecast_bot.element_resolver')


@dataclass(frozen=True)
class Candidate:
    """
    One way of locating an element.

    kind:
        css         - CSS / Playwright selector in `selector`
        role        - ARIA role in `selector`, accessible name in `name`
        text        - visible text `name`
        label       - associated <label> text `name`
        placeholder - placeholder text `name`
        value       - submit-style control whose value attribute is `name`
    exact: exact name match (role/text/label/placeholder)
    nth:   pick the nth match instead of the first
    """
    kind: str
    selector: str = ""
    name: str = ""
    exact: bool = False
    nth: int = 0

    def describe(self) -> str:
        if self.kind == "css":
            target = self.selector
        elif self.kind == "role":
            target = f"{self.selector}[name{'=' if self.exact else '~'}{self.name!r}]"
        else:
            target = f"{self.name!r}{' exact' if self.exact else ''}"
        suffix = f" #{self.nth}" if self.nth else ""
        return f"{self.kind}:{target}{suffix}"

    def build(self, page: Page) -> Locator:
        """Translate the descriptor into a Playwright locator."""
        if self.kind == "css":
            loc = page.locator(self.selector)
        elif self.kind == "role":
            if self.exact:
                loc = page.get_by_role(self.selector, name=self.name, exact=True)
            else:
                loc = page.get_by_role(self.selector, name=re.compile(re.escape(self.name), re.I))
        elif self.kind == "text":
            loc = page.get_by_text(self.name, exact=self.exact)
        elif self.kind == "label":
            loc = page.get_by_label(self.name, exact=self.exact)
        elif self.kind == "placeholder":
            loc = page.get_by_placeholder(self.name, exact=self.exact)
        elif self.kind == "value":
            value = self.name.replace('"', '\\"')
            loc = page.locator(
                f'input[type="submit"][value="{value}"], '
                f'input[type="button"][value="{value}"], '
                f'button[value="{value}"]'
            )
        else:
            raise ValueError(f"Unknown candidate kind: {self.kind}")
        return loc.nth(self.nth) if self.nth else loc.first


def css(selector: str, nth: int = 0) -> Candidate:
    return Candidate("css", selector=selector, nth=nth)


def role(aria_role: str, name: str, exact: bool = False) -> Candidate:
    return Candidate("role", selector=aria_role, name=name, exact=exact)


def text(name: str, exact: bool = False) -> Candidate:
    return Candidate("text", name=name, exact=exact)


def value(label: str) -> Candidate:
    return Candidate("value", name=label)


class ElementResolver:
    """
    Probe candidate locators in preference order.

    Usage:
        resolver = ElementResolver(page)
        button = resolver.resolve("submit button", SUBMIT_CANDIDATES, probe_timeout=3000)
        if button is None:
            ...  # caller decides whether that is fatal
    """

    def __init__(self, page: Page, clock=time.monotonic, sleep=time.sleep,
                 poll_interval_ms: int = RESOLVE_POLL_INTERVAL):
        self.page = page
        self._clock = clock
        self._sleep = sleep
        self.poll_interval_ms = poll_interval_ms

    def resolve(self, role_name: str, candidates: Sequence[Candidate],
                probe_timeout: int, budget_ms: Optional[int] = None) -> Optional[Locator]:
        """
        Return the first candidate that is present and becomes visible.

        Candidates are probed in order, pass after pass, until one resolves
        or the budget runs out, so elements rendered by script after the
        load event are still found.

        Args:
            role_name: Logical role, for logs
            candidates: Ordered descriptors, most preferred first
            probe_timeout: Max milliseconds to wait for each candidate's visibility
            budget_ms: Aggregate limit for the whole call
                (defaults to probe_timeout per candidate)

        Returns:
            The Locator, or None if nothing resolved within the budget
        """
        if budget_ms is None:
            budget_ms = probe_timeout * max(len(candidates), 1)
        deadline = self._clock() + budget_ms / 1000
        passes = 0

        while True:
            passes += 1
            for i, candidate in enumerate(candidates):
                remaining_ms = int((deadline - self._clock()) * 1000)
                if remaining_ms <= 0:
                    break

                loc = self._probe(role_name, candidate, min(probe_timeout, remaining_ms))
                if loc is not None:
                    logger.info(f"[{role_name}] Resolved via candidate {i + 1}/{len(candidates)}: "
                                f"{candidate.describe()} (pass {passes})")
                    return loc

            remaining_ms = int((deadline - self._clock()) * 1000)
            if remaining_ms <= 0:
                break
            self._sleep(min(self.poll_interval_ms, remaining_ms) / 1000)

        logger.warning(f"[{role_name}] No candidate resolved within {budget_ms}ms "
                       f"({len(candidates)} candidates, {passes} pass(es))")
        return None

    def _probe(self, role_name: str, candidate: Candidate, timeout_ms: int) -> Optional[Locator]:
        """One attempt at one candidate: present now and visible within timeout_ms."""
        try:
            loc = candidate.build(self.page)
            if loc.count() == 0:
                logger.debug(f"[{role_name}] {candidate.describe()} not present")
                return None
            loc.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightError as e:
            logger.debug(f"[{role_name}] {candidate.describe()} not visible: {e}")
            return None
        return loc

    def require(self, role_name: str, candidates: Sequence[Candidate],
                probe_timeout: int, budget_ms: Optional[int] = None) -> Locator:
        """resolve(), but absence raises ElementNotFoundError."""
        loc = self.resolve(role_name, candidates, probe_timeout, budget_ms)
        if loc is None:
            raise ElementNotFoundError(role_name, tried=len(candidates))
        return loc
