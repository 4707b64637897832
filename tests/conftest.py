"""Shared fixtures for SiteWalker unit tests."""

from __future__ import annotations

import asyncio
import fnmatch
import re
from pathlib import Path
from typing import Any

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sitewalker.config import WalkerConfig


# ---------------------------------------------------------------------------
# Fake browser surface
# ---------------------------------------------------------------------------

class FakeElement:
    """Element handle double that records interactions."""

    def __init__(self, selector: str, text: str = "", page: FakePage | None = None,
                 remove_on_click: bool = False, children: dict[str, FakeElement] | None = None,
                 attrs: dict[str, str] | None = None) -> None:
        self.selector = selector
        self.text = text
        self.clicks = 0
        self.filled: list[str] = []
        self.children = children or {}
        self.attrs = attrs or {}
        self._page = page
        self._remove_on_click = remove_on_click

    async def click(self, **kwargs: Any) -> None:
        self.clicks += 1
        if self._page is not None:
            self._page.clicked.append(self.selector)
            if self._remove_on_click:
                self._page.remove(self.selector)

    async def fill(self, value: str, **kwargs: Any) -> None:
        self.filled.append(value)

    async def text_content(self) -> str:
        return self.text

    async def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)

    async def query_selector(self, selector: str) -> FakeElement | None:
        return self.children.get(selector)


class FakeKeyboard:
    def __init__(self) -> None:
        self.typed: list[str] = []
        self.pressed: list[str] = []

    async def type(self, text: str, **kwargs: Any) -> None:
        self.typed.append(text)

    async def press(self, key: str, **kwargs: Any) -> None:
        self.pressed.append(key)


class FakePage:
    """In-memory stand-in for a Playwright async Page.

    - ``add(selector)`` makes an element present and visible immediately.
    - ``add(selector, delay=0.05)`` makes it appear after ``delay`` seconds.
    - ``fail(selector, message)`` makes waits on it raise a transport error.
    - Waits on absent selectors sleep for their timeout, then time out.
    """

    def __init__(self) -> None:
        self.url = "about:blank"
        self.keyboard = FakeKeyboard()
        self.elements: dict[str, FakeElement] = {}
        self.delays: dict[str, float] = {}
        self.errors: dict[str, str] = {}
        self.load_states: set[str] = {"load", "domcontentloaded", "networkidle"}
        self.screenshot_error: Exception | None = None
        self.screenshots: list[dict[str, Any]] = []
        self.visited: list[str] = []
        self.clicked: list[str] = []
        self.focused: list[str] = []
        self.wait_calls: list[tuple[str, str, int]] = []
        self.items: dict[str, list[FakeElement]] = {}

    # -- test setup helpers --------------------------------------------------

    def add_items(self, selector: str, items: list[FakeElement]) -> list[FakeElement]:
        """Make ``selector`` match every element in ``items`` (first one for waits)."""
        self.items[selector] = items
        if items:
            self.elements[selector] = items[0]
        return items

    def add(self, selector: str, text: str = "", delay: float = 0.0,
            remove_on_click: bool = False) -> FakeElement:
        element = FakeElement(selector, text=text, page=self, remove_on_click=remove_on_click)
        self.elements[selector] = element
        if delay:
            self.delays[selector] = delay
        return element

    def remove(self, selector: str) -> None:
        self.elements.pop(selector, None)

    def fail(self, selector: str, message: str = "Target page, context or browser has been closed") -> None:
        self.errors[selector] = message

    # -- BrowserPage surface -------------------------------------------------

    def set_default_timeout(self, timeout: float) -> None:
        self.default_timeout = timeout

    async def goto(self, url: str, **kwargs: Any) -> None:
        self.visited.append(url)
        self.url = url

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: float = 30_000) -> Any:
        self.wait_calls.append((selector, state, int(timeout)))
        if selector in self.errors:
            raise PlaywrightError(self.errors[selector])

        if state in ("visible", "attached"):
            delay = self.delays.get(selector, 0.0)
            if selector in self.elements and delay * 1000 < timeout:
                if delay:
                    await asyncio.sleep(delay)
                return self.elements.get(selector)
        else:
            if selector not in self.elements:
                return None

        await asyncio.sleep(timeout / 1000)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_load_state(self, state: str = "load", timeout: float = 30_000) -> None:
        if state not in self.load_states:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {state}")

    async def wait_for_url(self, url: Any, timeout: float = 30_000) -> None:
        if isinstance(url, re.Pattern):
            matched = url.search(self.url) is not None
        else:
            matched = fnmatch.fnmatch(self.url, url)
        if not matched:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for URL {url}")

    async def query_selector(self, selector: str) -> Any:
        return self.elements.get(selector)

    async def query_selector_all(self, selector: str) -> list[Any]:
        if selector in self.items:
            return list(self.items[selector])
        element = self.elements.get(selector)
        return [element] if element else []

    async def focus(self, selector: str, **kwargs: Any) -> None:
        self.focused.append(selector)

    async def screenshot(self, path: str | None = None, full_page: bool = False, **kwargs: Any) -> bytes:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        data = b"\x89PNG fake"
        if path is not None:
            Path(path).write_bytes(data)
        self.screenshots.append({"path": path, "full_page": full_page})
        return data


class RecordingSleep:
    """Async sleep replacement that records requested delays (seconds) and returns at once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)

    @property
    def calls_ms(self) -> list[int]:
        return [round(s * 1000) for s in self.calls]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def config(tmp_path: Path) -> WalkerConfig:
    """Config with short timeouts and screenshots under tmp_path."""
    return WalkerConfig(
        timeout_ms=200,
        network_idle_timeout_ms=200,
        max_retries=3,
        base_delay_ms=100,
        screenshot_dir=tmp_path / "screenshots",
    )


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid sitewalker.yaml as a string."""
    return """\
timeout_ms: 15000
network_idle_timeout_ms: 8000
max_retries: 4
base_delay_ms: 250
screenshot_dir: shots
screenshot_prefix: shop
full_page_screenshots: false
missing_element_policy: ignore
browser: firefox
headless: false
viewport:
  width: 1920
  height: 1080
"""


@pytest.fixture
def sample_workflow_yaml() -> str:
    """Return a valid workflow definition as a string."""
    return """\
workflow:
  name: shop-checkout
  start_url: https://shop.example.com
  retry:
    max_attempts: 2
    base_delay_ms: 50
  vars:
    item: headphones
  steps:
    - name: search
      action: type
      selector: "#search"
      text: "{{item}}"
      submit: true
      retry: false
    - name: add-to-cart
      action: click
      selectors: ["#add-to-cart", "#buy-now"]
    - name: decline-coverage
      action: race
      fallback_ms: 100
      signals:
        - {name: no-coverage, selector: "#no-coverage", click: true}
        - {name: added, selector: "#added-banner"}
    - name: confirm
      action: wait
      selector: "#cart-count"
"""
