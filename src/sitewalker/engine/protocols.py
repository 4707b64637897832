"""Browser control surface and wait descriptors.

These types define the contract between SiteWalker's orchestration core and
the browser it drives. Playwright's async ``Page`` satisfies ``BrowserPage``
structurally; tests inject an in-memory fake.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

# An opaque async unit of work with no inputs beyond its closure.
ActionUnit = Callable[[], Awaitable[T]]


class ElementState(str, enum.Enum):
    """States an element wait can target (Playwright ``wait_for_selector``)."""

    VISIBLE = "visible"
    HIDDEN = "hidden"
    ATTACHED = "attached"
    DETACHED = "detached"


class PageState(str, enum.Enum):
    """Page-level conditions."""

    IDLE = "idle"  # no network activity for a quiet window
    LOADED = "loaded"  # the load event fired


WaitState = ElementState | PageState


def parse_state(value: str | WaitState) -> WaitState:
    """Resolve a state name to ElementState or PageState. Raises ValueError."""
    if isinstance(value, (ElementState, PageState)):
        return value
    for enum_cls in (ElementState, PageState):
        try:
            return enum_cls(value)
        except ValueError:
            continue
    valid = [s.value for s in ElementState] + [s.value for s in PageState]
    raise ValueError(f"Unknown wait state '{value}' (expected one of: {', '.join(valid)})")


@dataclasses.dataclass(frozen=True)
class WaitSpec:
    """A condition to wait for: a target descriptor reaching a state."""

    descriptor: str
    state: WaitState = ElementState.VISIBLE
    timeout_ms: int = 30_000

    def __post_init__(self) -> None:
        object.__setattr__(self, "state", parse_state(self.state))
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if isinstance(self.state, ElementState) and not self.descriptor:
            raise ValueError("Element waits require a non-empty descriptor")

    @property
    def is_page_wait(self) -> bool:
        return isinstance(self.state, PageState)


class Keyboard(Protocol):
    async def type(self, text: str, **kwargs: Any) -> None: ...

    async def press(self, key: str, **kwargs: Any) -> None: ...


class ElementHandle(Protocol):
    """A resolved element, as returned by waits and queries."""

    async def click(self, **kwargs: Any) -> None: ...

    async def fill(self, value: str, **kwargs: Any) -> None: ...

    async def text_content(self) -> str | None: ...

    async def get_attribute(self, name: str) -> str | None: ...

    async def query_selector(self, selector: str) -> ElementHandle | None: ...


@runtime_checkable
class BrowserPage(Protocol):
    """The subset of a browser page the orchestration core depends on."""

    keyboard: Keyboard

    async def goto(self, url: str, **kwargs: Any) -> Any: ...

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> ElementHandle | None: ...

    async def wait_for_load_state(self, state: str = ..., **kwargs: Any) -> None: ...

    async def wait_for_url(self, url: Any, **kwargs: Any) -> None: ...

    async def query_selector(self, selector: str) -> ElementHandle | None: ...

    async def query_selector_all(self, selector: str) -> list[ElementHandle]: ...

    async def focus(self, selector: str, **kwargs: Any) -> None: ...

    async def screenshot(self, **kwargs: Any) -> bytes: ...
