"""SiteWalker Checkpoint Recorder -- labeled screenshots at each workflow stage.

Capture is best-effort. A failed screenshot is logged and forgotten; it must
never abort a workflow that would otherwise have succeeded.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import re
import time
from pathlib import Path

from sitewalker.config import WalkerConfig
from sitewalker.engine.protocols import BrowserPage

logger = logging.getLogger("sitewalker.engine.checkpoint")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclasses.dataclass(frozen=True)
class Checkpoint:
    """A screenshot captured at a named stage."""

    label: str
    timestamp: dt.datetime
    path: Path


def _safe(text: str) -> str:
    """Make ``text`` usable as a filename component."""
    cleaned = _UNSAFE_CHARS.sub("-", text.strip()).strip("-")
    return cleaned or "stage"


class CheckpointRecorder:
    """Records checkpoints for one workflow run.

    Checkpoints are kept in the order their labels were first recorded.
    Labels are stage-scoped: recording the same label again replaces the
    earlier entry in place.
    """

    def __init__(
        self,
        page: BrowserPage,
        workflow_name: str,
        config: WalkerConfig | None = None,
    ) -> None:
        self._page = page
        self._workflow_name = workflow_name
        self._config = config or WalkerConfig()
        self._prefix = _safe(self._config.screenshot_prefix or workflow_name)
        self._checkpoints: dict[str, Checkpoint] = {}

    @property
    def workflow_name(self) -> str:
        return self._workflow_name

    @property
    def checkpoints(self) -> list[Checkpoint]:
        return list(self._checkpoints.values())

    def path_for(self, label: str, timestamp_ms: int) -> Path:
        """Screenshot path: ``screenshot-{prefix}-{label}-{timestamp_ms}.png``."""
        filename = f"screenshot-{self._prefix}-{_safe(label)}-{timestamp_ms}.png"
        return self._config.screenshot_dir / filename

    async def checkpoint(self, stage_label: str) -> Checkpoint | None:
        """Capture a screenshot for ``stage_label``. Returns None if capture failed."""
        if not self._config.checkpoints_enabled:
            logger.debug("Checkpoints disabled, skipping '%s'", stage_label)
            return None

        now = dt.datetime.now(dt.timezone.utc)
        path = self.path_for(stage_label, int(time.time() * 1000))
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await self._page.screenshot(path=str(path), full_page=self._config.full_page_screenshots)
        except Exception as exc:
            logger.warning(
                "Screenshot failed for %s/%s: %s", self._workflow_name, stage_label, exc
            )
            return None

        checkpoint = Checkpoint(label=stage_label, timestamp=now, path=path)
        previous = self._checkpoints.get(stage_label)
        if previous is not None:
            logger.debug("Checkpoint '%s' replaces %s", stage_label, previous.path)
        self._checkpoints[stage_label] = checkpoint
        logger.info("Screenshot taken: %s -> %s", stage_label, path)
        return checkpoint
