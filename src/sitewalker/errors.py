"""SiteWalker exception hierarchy."""

from __future__ import annotations


class SiteWalkerError(Exception):
    """Base class for all SiteWalker errors."""

    pass


class WalkerConfigError(SiteWalkerError):
    """Raised when configuration is invalid or missing."""

    pass


class WaitError(SiteWalkerError):
    """Raised when a wait is malformed or the browser transport fails.

    An ordinary timeout is NOT a WaitError; waiters report it as a
    negative result.
    """

    pass


class WaitTimeoutError(WaitError):
    """Raised on timeout only when the caller asked for ``raise_on_timeout``."""

    def __init__(self, descriptor: str, state: str, timeout_ms: int) -> None:
        self.descriptor = descriptor
        self.state = state
        self.timeout_ms = timeout_ms
        super().__init__(f"'{descriptor}' did not become {state} within {timeout_ms}ms")


class ElementNotFoundError(SiteWalkerError):
    """Raised by an action when none of its target descriptors is present."""

    def __init__(self, descriptors: list[str] | tuple[str, ...], action: str = "") -> None:
        self.descriptors = list(descriptors)
        self.action = action
        targets = ", ".join(repr(d) for d in self.descriptors)
        prefix = f"{action}: " if action else ""
        super().__init__(f"{prefix}no element found for {targets}")


class ExtractionError(SiteWalkerError):
    """Raised when page content was found but could not be read as data."""

    pass


class WorkflowDefinitionError(SiteWalkerError):
    """Raised when a workflow definition file is malformed."""

    pass


class SessionBusyError(SiteWalkerError):
    """Raised when a browser page is claimed by a second in-flight workflow."""

    pass
