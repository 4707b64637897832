"""SiteWalker Condition Waiter -- bounded waits on element and page state.

An ordinary timeout is not an error here: third-party UI timing is racy, and
every caller would otherwise repeat the same timeout handling. A wait that
expires returns a negative result (``None`` / ``False``). Only malformed input
or a browser transport failure raises ``WaitError``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sitewalker.config import WalkerConfig
from sitewalker.engine.protocols import BrowserPage, ElementState, PageState, WaitSpec, parse_state
from sitewalker.errors import WaitError, WaitTimeoutError

logger = logging.getLogger("sitewalker.engine.waiter")

# Playwright load-state names for the page-level conditions
_LOAD_STATES = {
    PageState.IDLE: "networkidle",
    PageState.LOADED: "load",
}


class ConditionWaiter:
    """Waits for named UI and network conditions on one page."""

    def __init__(self, page: BrowserPage, config: WalkerConfig | None = None) -> None:
        self._page = page
        self._config = config or WalkerConfig()

    @property
    def page(self) -> BrowserPage:
        return self._page

    @property
    def config(self) -> WalkerConfig:
        return self._config

    # -- Element waits -------------------------------------------------------

    async def wait_for(
        self,
        descriptor: str,
        state: str | ElementState = ElementState.VISIBLE,
        timeout_ms: int | None = None,
        raise_on_timeout: bool = False,
    ) -> Any:
        """Wait for ``descriptor`` to reach ``state``.

        Returns the element handle for visible/attached, ``True`` for
        hidden/detached, or ``None`` if the timeout elapsed first.
        """
        element_state = self._element_state(state)
        timeout = self._timeout(timeout_ms)
        if not descriptor or not isinstance(descriptor, str):
            raise WaitError(f"Element wait requires a non-empty descriptor, got {descriptor!r}")

        logger.debug("Waiting up to %dms for '%s' to be %s", timeout, descriptor, element_state.value)
        try:
            handle = await self._page.wait_for_selector(
                descriptor, state=element_state.value, timeout=timeout
            )
        except PlaywrightTimeoutError:
            logger.debug("'%s' not %s after %dms", descriptor, element_state.value, timeout)
            if raise_on_timeout:
                raise WaitTimeoutError(descriptor, element_state.value, timeout) from None
            return None
        except PlaywrightError as exc:
            raise WaitError(f"Waiting for '{descriptor}' failed: {exc}") from exc

        if element_state in (ElementState.HIDDEN, ElementState.DETACHED):
            return True
        return handle

    async def wait_for_first(
        self,
        descriptors: Sequence[str],
        state: str | ElementState = ElementState.VISIBLE,
        timeout_ms: int | None = None,
    ) -> tuple[str, Any] | None:
        """Try each descriptor in order and return the first that matches.

        First-match, not best-match: descriptors are tried sequentially, each
        with its own ``timeout_ms``, and the search stops at the first one
        that reaches ``state``. Returns ``(descriptor, handle)`` or ``None``.
        """
        if isinstance(descriptors, str):
            descriptors = [descriptors]
        if not descriptors:
            raise WaitError("wait_for_first requires at least one descriptor")

        for descriptor in descriptors:
            handle = await self.wait_for(descriptor, state, timeout_ms)
            if handle is not None:
                logger.debug("First match: '%s'", descriptor)
                return descriptor, handle
        logger.info("None of %d alternative descriptors matched", len(descriptors))
        return None

    # -- Page waits ----------------------------------------------------------

    async def wait_for_network_idle(self, timeout_ms: int | None = None) -> bool:
        """Wait until the page has had no network activity for a quiet window.

        Some pages never reach idle (polling, websockets); that is reported as
        ``False``, not raised.
        """
        timeout = self._timeout(timeout_ms, self._config.network_idle_timeout_ms)
        logger.debug("Waiting for network to become idle...")
        reached = await self._load_state(PageState.IDLE, timeout)
        if reached:
            logger.debug("Network is idle.")
        else:
            logger.warning("Network did not reach idle state within %dms, continuing...", timeout)
        return reached

    async def wait_for_load(self, timeout_ms: int | None = None) -> bool:
        """Wait for the page's load event."""
        timeout = self._timeout(timeout_ms)
        logger.debug("Waiting for page to load...")
        reached = await self._load_state(PageState.LOADED, timeout)
        if not reached:
            logger.warning("Page did not load within %dms, continuing...", timeout)
        return reached

    async def wait_for_url(self, pattern: str | re.Pattern[str], timeout_ms: int | None = None) -> bool:
        """Wait for the page URL to match a glob string or compiled regex."""
        timeout = self._timeout(timeout_ms)
        try:
            await self._page.wait_for_url(pattern, timeout=timeout)
        except PlaywrightTimeoutError:
            logger.warning("URL did not match %s within %dms", pattern, timeout)
            return False
        except PlaywrightError as exc:
            raise WaitError(f"Waiting for URL {pattern} failed: {exc}") from exc
        return True

    async def wait_for_spec(self, spec: WaitSpec, raise_on_timeout: bool = False) -> Any:
        """Dispatch a WaitSpec to the matching element or page wait."""
        if spec.is_page_wait:
            reached = await self._load_state(spec.state, spec.timeout_ms)  # type: ignore[arg-type]
            if not reached and raise_on_timeout:
                raise WaitTimeoutError(spec.descriptor or "page", spec.state.value, spec.timeout_ms)
            return reached
        return await self.wait_for(
            spec.descriptor, spec.state, spec.timeout_ms, raise_on_timeout=raise_on_timeout
        )

    # -- Internals -----------------------------------------------------------

    async def _load_state(self, state: PageState, timeout: int) -> bool:
        try:
            await self._page.wait_for_load_state(_LOAD_STATES[state], timeout=timeout)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            raise WaitError(f"Waiting for page state '{state.value}' failed: {exc}") from exc
        return True

    def _timeout(self, timeout_ms: int | None, default: int | None = None) -> int:
        if timeout_ms is None:
            return default if default is not None else self._config.timeout_ms
        if not isinstance(timeout_ms, int) or isinstance(timeout_ms, bool) or timeout_ms <= 0:
            raise WaitError(f"timeout_ms must be a positive integer, got {timeout_ms!r}")
        return timeout_ms

    @staticmethod
    def _element_state(state: str | ElementState) -> ElementState:
        try:
            parsed = parse_state(state)
        except ValueError as exc:
            raise WaitError(str(exc)) from exc
        if not isinstance(parsed, ElementState):
            raise WaitError(
                f"'{parsed.value}' is a page state; use wait_for_network_idle() or wait_for_load()"
            )
        return parsed
