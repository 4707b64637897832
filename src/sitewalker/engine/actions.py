"""SiteWalker page actions -- generic interaction and extraction units over opaque descriptors.

Every target is an ordered list of alternative descriptors resolved with the
waiter's first-match policy. When no alternative is found, the outcome is
decided by ``WalkerConfig.missing_element_policy`` or a per-call
``optional`` flag:

- ``fail`` (default): raise ElementNotFoundError, so a surrounding retry
  policy can try again and the pipeline can report the step.
- ``ignore`` / ``optional=True``: log a warning and carry on.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sitewalker.config import WalkerConfig
from sitewalker.engine.protocols import BrowserPage, ElementHandle, ElementState
from sitewalker.engine.race import RaceComposer, RaceResult, SuccessSignal, await_any_signal
from sitewalker.engine.waiter import ConditionWaiter
from sitewalker.errors import ElementNotFoundError, ExtractionError

logger = logging.getLogger("sitewalker.engine.actions")

Descriptors = str | Sequence[str]

# A field is a sub-selector read as text, or {"selector": ..., "attribute": ...}
FieldSpec = str | Mapping[str, str]


def _as_list(descriptors: Descriptors) -> list[str]:
    if isinstance(descriptors, str):
        return [descriptors]
    return list(descriptors)


def _field_spec(name: str, spec: FieldSpec) -> tuple[str, str | None]:
    if isinstance(spec, str):
        return spec, None
    try:
        return spec["selector"], spec.get("attribute")
    except (KeyError, TypeError, AttributeError):
        raise ExtractionError(f"Field '{name}' must be a selector or a mapping with 'selector'") from None


async def _read_fields(
    root: BrowserPage | ElementHandle,
    fields: Mapping[str, FieldSpec],
    default: str,
) -> dict[str, str]:
    record: dict[str, str] = {}
    for name, spec in fields.items():
        selector, attribute = _field_spec(name, spec)
        element = await root.query_selector(selector)
        if element is None:
            record[name] = default
            continue
        raw = await element.get_attribute(attribute) if attribute else await element.text_content()
        record[name] = (raw or "").strip() or default
    return record


class PageActions:
    """Generic, site-agnostic interactions with one page."""

    # How many consecutive overlays dismiss_all() will close before giving up
    MAX_DISMISSALS = 10

    def __init__(
        self,
        waiter: ConditionWaiter,
        config: WalkerConfig | None = None,
        composer: RaceComposer | None = None,
    ) -> None:
        self._waiter = waiter
        self._config = config or waiter.config
        self._composer = composer or RaceComposer()

    @property
    def page(self) -> BrowserPage:
        return self._waiter.page

    @property
    def waiter(self) -> ConditionWaiter:
        return self._waiter

    # -- Navigation ----------------------------------------------------------

    async def goto(self, url: str, wait_for_idle: bool = True, timeout_ms: int | None = None) -> None:
        """Navigate to ``url`` and let the page settle."""
        timeout = timeout_ms or self._config.timeout_ms
        logger.info("Navigating to %s", url)
        await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        if wait_for_idle:
            await self._waiter.wait_for_network_idle()

    # -- Element interactions ------------------------------------------------

    async def click(
        self,
        descriptors: Descriptors,
        timeout_ms: int | None = None,
        optional: bool = False,
    ) -> str | None:
        """Click the first visible match. Returns the descriptor that was clicked."""
        match = await self._waiter.wait_for_first(_as_list(descriptors), ElementState.VISIBLE, timeout_ms)
        if match is None:
            return self._missing(descriptors, "click", optional)
        descriptor, handle = match
        await handle.click()
        logger.info("Clicked '%s'", descriptor)
        return descriptor

    async def fill(
        self,
        descriptors: Descriptors,
        value: str,
        timeout_ms: int | None = None,
        optional: bool = False,
    ) -> str | None:
        """Fill the first visible match with ``value``."""
        match = await self._waiter.wait_for_first(_as_list(descriptors), ElementState.VISIBLE, timeout_ms)
        if match is None:
            return self._missing(descriptors, "fill", optional)
        descriptor, handle = match
        await handle.fill(value)
        logger.info("Filled '%s'", descriptor)
        return descriptor

    async def type_text(
        self,
        text: str,
        descriptors: Descriptors | None = None,
        submit: bool = False,
        timeout_ms: int | None = None,
    ) -> None:
        """Type ``text`` with the keyboard, optionally focusing a target first."""
        if descriptors is not None:
            match = await self._waiter.wait_for_first(_as_list(descriptors), ElementState.VISIBLE, timeout_ms)
            if match is None:
                self._missing(descriptors, "type", optional=False)
                return
            await self.page.focus(match[0])
        await self.page.keyboard.type(text)
        if submit:
            await self.page.keyboard.press("Enter")

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def wait(
        self,
        descriptors: Descriptors,
        state: str | ElementState = ElementState.VISIBLE,
        timeout_ms: int | None = None,
        optional: bool = False,
    ) -> str | None:
        """Wait for the first alternative to reach ``state``; raise if none do."""
        match = await self._waiter.wait_for_first(_as_list(descriptors), state, timeout_ms)
        if match is None:
            return self._missing(descriptors, "wait", optional)
        return match[0]

    async def extract_text(
        self,
        descriptors: Descriptors,
        timeout_ms: int | None = None,
        optional: bool = False,
    ) -> str | None:
        """Return the stripped text content of the first visible match."""
        match = await self._waiter.wait_for_first(_as_list(descriptors), ElementState.VISIBLE, timeout_ms)
        if match is None:
            return self._missing(descriptors, "extract_text", optional)
        text = await match[1].text_content()
        return (text or "").strip()

    async def dismiss_all(self, descriptor: str) -> int:
        """Click ``descriptor`` until it is no longer present (e.g. stacked overlays).

        Returns the number of elements dismissed.
        """
        count = 0
        while count < self.MAX_DISMISSALS:
            handle = await self.page.query_selector(descriptor)
            if handle is None:
                break
            await handle.click()
            count += 1
        if count:
            logger.info("Dismissed %d element(s) matching '%s'", count, descriptor)
        return count

    # -- Data extraction -----------------------------------------------------

    async def extract_list(
        self,
        items: Descriptors,
        fields: Mapping[str, FieldSpec],
        timeout_ms: int | None = None,
        optional: bool = False,
        default: str = "",
    ) -> list[dict[str, str]]:
        """Read one record per element matching ``items``.

        Waits for the first item to be visible, then reads every match. Each
        field is a selector resolved inside the item and read as stripped
        text, or ``{selector, attribute}`` to read an attribute such as
        ``href``. A field whose element is absent gets ``default``.
        """
        match = await self._waiter.wait_for_first(_as_list(items), ElementState.VISIBLE, timeout_ms)
        if match is None:
            self._missing(items, "extract_list", optional)
            return []
        descriptor = match[0]
        handles = await self.page.query_selector_all(descriptor)
        records = [await _read_fields(handle, fields, default) for handle in handles]
        logger.info("Extracted %d record(s) from '%s'", len(records), descriptor)
        return records

    async def extract_fields(
        self,
        fields: Mapping[str, FieldSpec],
        timeout_ms: int | None = None,
        optional: bool = False,
        default: str = "",
    ) -> dict[str, str] | None:
        """Read a single record of page-level fields (e.g. a profile header).

        Waits until one of the field selectors is visible, then reads them
        all the way ``extract_list`` reads an item.
        """
        selectors = [_field_spec(name, spec)[0] for name, spec in fields.items()]
        if await self._waiter.wait_for_first(selectors, ElementState.VISIBLE, timeout_ms) is None:
            return self._missing(selectors, "extract_fields", optional)
        return await _read_fields(self.page, fields, default)

    async def extract_json(self, descriptor: Descriptors = "body", timeout_ms: int | None = None) -> Any:
        """Parse the text of ``descriptor`` as JSON (an API response opened as a page)."""
        text = await self.extract_text(descriptor, timeout_ms)
        if not text:
            raise ExtractionError(f"No text found in {_as_list(descriptor)} to parse as JSON")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"Page text is not valid JSON: {exc}") from exc

    # -- Composite waits -----------------------------------------------------

    async def race(self, signals: Sequence[SuccessSignal], fallback_ms: int) -> RaceResult:
        """Proceed on the first of several equivalent signals, or after fallback_ms."""
        return await await_any_signal(self._waiter, signals, fallback_ms, composer=self._composer)

    async def click_handle(self, handle: Any) -> None:
        """``on_match`` helper for signals whose element should be clicked."""
        await handle.click()

    # -- Internals -----------------------------------------------------------

    def _missing(self, descriptors: Descriptors, action: str, optional: bool) -> None:
        targets = _as_list(descriptors)
        if optional or self._config.missing_element_policy == "ignore":
            logger.warning("%s: no element found for %s, continuing", action, targets)
            return None
        raise ElementNotFoundError(targets, action=action)
