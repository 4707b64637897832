"""SiteWalker configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from sitewalker.errors import WalkerConfigError
from sitewalker.models import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_BROWSER,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MISSING_ELEMENT_POLICY,
    DEFAULT_NETWORK_IDLE_TIMEOUT_MS,
    DEFAULT_SCREENSHOT_DIR,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_VIEWPORT,
    MISSING_ELEMENT_POLICIES,
    SUPPORTED_BROWSERS,
)

if TYPE_CHECKING:
    from sitewalker.engine.retry import RetryPolicy

__all__ = ["WalkerConfig", "WalkerConfigError"]


@dataclass
class WalkerConfig:
    """Configuration shared by the waiter, retry, race and checkpoint components.

    One instance is built per run and handed to each component at
    construction; nothing reads process-wide state.
    """

    # Waits
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    network_idle_timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS

    # Retry
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS

    # Checkpoints
    screenshot_dir: Path = field(default_factory=lambda: Path(DEFAULT_SCREENSHOT_DIR))
    screenshot_prefix: str | None = None
    full_page_screenshots: bool = True
    checkpoints_enabled: bool = True

    # Behavior
    missing_element_policy: str = DEFAULT_MISSING_ELEMENT_POLICY

    # Browser
    browser: str = DEFAULT_BROWSER
    headless: bool = True
    viewport: tuple[int, int] = DEFAULT_VIEWPORT

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise WalkerConfigError if any value is out of range."""
        if self.timeout_ms <= 0:
            raise WalkerConfigError(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if self.network_idle_timeout_ms <= 0:
            raise WalkerConfigError(
                f"network_idle_timeout_ms must be > 0, got {self.network_idle_timeout_ms}"
            )
        if self.max_retries < 1:
            raise WalkerConfigError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.base_delay_ms < 0:
            raise WalkerConfigError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.missing_element_policy not in MISSING_ELEMENT_POLICIES:
            raise WalkerConfigError(
                f"missing_element_policy must be one of {', '.join(MISSING_ELEMENT_POLICIES)}, "
                f"got '{self.missing_element_policy}'"
            )
        if min(self.viewport) <= 0:
            raise WalkerConfigError(f"viewport width and height must be > 0, got {self.viewport}")
        if self.browser not in SUPPORTED_BROWSERS:
            raise WalkerConfigError(
                f"browser must be one of {', '.join(SUPPORTED_BROWSERS)}, got '{self.browser}'"
            )

    def retry_policy(self) -> RetryPolicy:
        """Default retry policy for steps that do not declare their own."""
        from sitewalker.engine.retry import RetryPolicy

        return RetryPolicy(max_attempts=self.max_retries, base_delay_ms=self.base_delay_ms)

    @classmethod
    def from_file(cls, config_path: Path) -> WalkerConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise WalkerConfigError(f"Config file not found: {config_path}")
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise WalkerConfigError(f"Config file is not valid YAML: {config_path}\n{exc}") from exc
        if not isinstance(data, dict):
            raise WalkerConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], base_dir: Path) -> WalkerConfig:
        """Create config from a dictionary. Relative paths resolve against base_dir."""
        kwargs: dict[str, Any] = {}

        try:
            for key in ("timeout_ms", "network_idle_timeout_ms", "max_retries", "base_delay_ms"):
                if key in data:
                    kwargs[key] = int(data[key])
            if "viewport" in data:
                vp = data["viewport"]
                if not isinstance(vp, dict):
                    raise WalkerConfigError("viewport must be a mapping with width and height")
                kwargs["viewport"] = (int(vp.get("width", DEFAULT_VIEWPORT[0])), int(vp.get("height", DEFAULT_VIEWPORT[1])))
        except (TypeError, ValueError) as exc:
            raise WalkerConfigError(f"Invalid numeric config value: {exc}") from exc

        if "screenshot_dir" in data:
            kwargs["screenshot_dir"] = base_dir / data["screenshot_dir"]
        else:
            kwargs["screenshot_dir"] = base_dir / DEFAULT_SCREENSHOT_DIR

        if "screenshot_prefix" in data:
            kwargs["screenshot_prefix"] = str(data["screenshot_prefix"])
        if "full_page_screenshots" in data:
            kwargs["full_page_screenshots"] = bool(data["full_page_screenshots"])
        if "checkpoints_enabled" in data:
            kwargs["checkpoints_enabled"] = bool(data["checkpoints_enabled"])
        if "missing_element_policy" in data:
            kwargs["missing_element_policy"] = str(data["missing_element_policy"])
        if "browser" in data:
            kwargs["browser"] = str(data["browser"])
        if "headless" in data:
            kwargs["headless"] = bool(data["headless"])

        return cls(**kwargs)
