"""SiteWalker Browser Session -- Playwright lifecycle and page ownership.

Launches a browser, creates one context and page, and hands that page to
one workflow at a time. Ownership is a flag set on the event loop thread
before the claim first yields, not a queue: a second claim while a
workflow is in flight is a programming error and raises SessionBusyError.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from sitewalker.config import WalkerConfig
from sitewalker.engine.actions import PageActions
from sitewalker.engine.checkpoint import CheckpointRecorder
from sitewalker.engine.waiter import ConditionWaiter
from sitewalker.errors import SessionBusyError

logger = logging.getLogger("sitewalker.engine.browser_session")


class WorkflowContext:
    """Everything a workflow needs for one run on a claimed page."""

    def __init__(self, page: Any, workflow_name: str, config: WalkerConfig) -> None:
        self.page = page
        self.config = config
        self.waiter = ConditionWaiter(page, config)
        self.actions = PageActions(self.waiter, config)
        self.recorder = CheckpointRecorder(page, workflow_name, config)


class BrowserSession:
    """Manages a Playwright browser, context and page.

    Usage::

        async with BrowserSession(config) as session:
            async with session.claim("checkout") as ctx:
                outcome = await workflow.run(ctx.recorder, config)
    """

    def __init__(self, config: WalkerConfig | None = None) -> None:
        self._config = config or WalkerConfig()

        # Managed browser lifecycle -- set by start()/stop()
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None
        self._owner: str | None = None
        self._page_lock = asyncio.Lock()

    @property
    def owner(self) -> str | None:
        return self._owner

    # -- Browser Lifecycle ---------------------------------------------------

    async def start(self) -> None:
        """Launch the browser. Call once before claim()."""
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self._config.browser)
        self._browser = await launcher.launch(headless=self._config.headless)
        logger.info(
            "Launched %s (headless=%s)", self._config.browser, self._config.headless
        )

    async def stop(self) -> None:
        """Close the page, context, browser and Playwright."""
        for name, resource, closer in (
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, closer)()
            except Exception as exc:
                logger.warning("Failed to close %s: %s", name, exc)
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
        self._owner = None

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def page(self) -> Any:
        """Return the session page, creating context and page on first call.

        The context (cookies, storage) persists across workflows run on the
        same session.
        """
        if self._page is not None:
            return self._page
        if self._browser is None:
            raise RuntimeError("BrowserSession.start() must be called before page()")

        # Concurrent callers share the one context created here.
        async with self._page_lock:
            if self._page is None:
                width, height = self._config.viewport
                self._context = await self._browser.new_context(viewport={"width": width, "height": height})
                page = await self._context.new_page()
                page.set_default_timeout(self._config.timeout_ms)
                self._page = page
        return self._page

    # -- Ownership -----------------------------------------------------------

    @contextlib.asynccontextmanager
    async def claim(self, workflow_name: str) -> AsyncIterator[WorkflowContext]:
        """Hand the page to ``workflow_name`` until the block exits."""
        if self._owner is not None:
            raise SessionBusyError(
                f"Page is in use by workflow '{self._owner}'; "
                f"'{workflow_name}' must wait until it finishes"
            )
        # Claimed before the first await so a concurrent claim sees the owner.
        self._owner = workflow_name
        logger.debug("Page claimed by %s", workflow_name)
        try:
            page = await self.page()
            yield WorkflowContext(page, workflow_name, self._config)
        finally:
            self._owner = None
            logger.debug("Page released by %s", workflow_name)
