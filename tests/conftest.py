"""Shared fixtures and Playwright fakes for the forecast bot tests."""

import re

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from forecast_bot.config import Credentials, Settings


class FakeElement:
    """One DOM element: visibility, enablement and a text value."""

    def __init__(self, name="", visible=True, enabled=True, value=""):
        self.name = name
        self.visible = visible
        self.enabled = enabled
        self.value = value
        self.clicks = 0
        self._selected = False

    def __repr__(self):
        return f"FakeElement({self.name!r})"


class FakeLocator:
    """Minimal Locator over a list of FakeElements."""

    def __init__(self, page, elements):
        self.page = page
        self.elements = list(elements)

    @property
    def first(self):
        return FakeLocator(self.page, self.elements[:1])

    def nth(self, index):
        return FakeLocator(self.page, self.elements[index:index + 1])

    @property
    def element(self):
        if not self.elements:
            raise PlaywrightTimeoutError("locator resolved to 0 elements")
        return self.elements[0]

    def count(self):
        return len(self.elements)

    def wait_for(self, state="visible", timeout=None):
        if not self.elements or not self.elements[0].visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {state}")

    def is_enabled(self):
        return self.element.enabled

    def click(self, **kwargs):
        el = self.element
        el.clicks += 1
        self.page.clicked.append(el.name)
        if self.page.on_click:
            self.page.on_click(el)

    def press(self, key):
        el = self.element
        self.page.pressed.append(key)
        if key == "ControlOrMeta+a":
            el._selected = True
        elif key in ("Delete", "Backspace") and el._selected:
            el.value = ""
            el._selected = False

    def press_sequentially(self, text, delay=0):
        el = self.element
        el.value += text
        self.page.typed.append((el.name, text))

    def input_value(self):
        return self.element.value


class FakePage:
    """
    Page fake keyed by selector string, ARIA role/name and text.

    Comma-separated selectors are resolved as the union of their parts,
    which is how the value-label submit candidates are looked up.
    """

    def __init__(self):
        self.css = {}
        self.roles = []
        self.texts = []
        self.url = "about:blank"
        self.html = ""
        self.visited = []
        self.clicked = []
        self.typed = []
        self.pressed = []
        self.screenshots = []
        self.load_error = None
        self.on_click = None

    # registration ---------------------------------------------------------
    def add(self, selector, element):
        self.css.setdefault(selector, []).append(element)
        return element

    def add_role(self, role, name, element):
        self.roles.append((role, name, element))
        return element

    def add_text(self, text, element):
        self.texts.append((text, element))
        return element

    # Page API -------------------------------------------------------------
    def locator(self, selector):
        elements = []
        for part in selector.split(", "):
            elements.extend(self.css.get(part.strip(), []))
        return FakeLocator(self, elements)

    def get_by_role(self, role, name=None, exact=False):
        matches = []
        for r, n, el in self.roles:
            if r != role:
                continue
            if isinstance(name, re.Pattern):
                ok = bool(name.search(n))
            elif exact:
                ok = n == name
            else:
                ok = name.lower() in n.lower()
            if ok:
                matches.append(el)
        return FakeLocator(self, matches)

    def get_by_text(self, text, exact=False):
        matches = [el for t, el in self.texts if (t == text if exact else text.lower() in t.lower())]
        return FakeLocator(self, matches)

    def get_by_label(self, text, exact=False):
        return FakeLocator(self, [])

    def get_by_placeholder(self, text, exact=False):
        return FakeLocator(self, [])

    def goto(self, url, **kwargs):
        self.visited.append(url)
        self.url = url

    def wait_for_load_state(self, state="load", timeout=None):
        if self.load_error:
            raise self.load_error

    def content(self):
        return self.html

    def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)


class FakeBot:
    """Stands in for ForecastSiteBot: one page, records open/close."""

    instances = []

    def __init__(self, page):
        self.page = page
        self.entered = False
        self.closed = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True
        return False


def build_site(page, enabled=True, confirmation="予想を受け付けました"):
    """Register a complete, well-behaved forecast site on `page`."""
    page.add('input[name="login_id"]', FakeElement("login_id"))
    page.add('input[name="password"]', FakeElement("password"))
    page.add('button[type="submit"]', FakeElement("login_button", enabled=enabled))
    page.add_role("link", "TOP", FakeElement("top_link"))
    page.add("input.yosou_int", FakeElement("major"))
    page.add("input.yosou_dec", FakeElement("minor"))
    page.add('input[type="submit"][value="予想する"]', FakeElement("submit"))

    def on_click(el):
        if el.name == "submit":
            page.html = f"<html><body>{confirmation}</body></html>"

    page.on_click = on_click
    return page


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with fast timeouts and a temp diagnostics directory."""
    return Settings(
        credentials=Credentials("tester", "s3cret"),
        login_url="https://forecast.example/login",
        diagnostics_dir=str(tmp_path / "diagnostics"),
        probe_timeout_ms=100,
        enable_timeout_ms=50,
        page_load_timeout_ms=1000,
        typing_delay_ms=0,
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def site(page) -> FakePage:
    return build_site(page)
