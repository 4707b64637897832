"""SiteWalker Workflow Pipeline -- ordered, fallible steps on one browser page.

A workflow is built as an ordered list of named steps and executed by a
single runner:

    idle -> running(index) -> succeeded | failed(index, error)

Each step runs to completion before the next starts. A step may carry its
own retry policy; there is no retry at the pipeline level. The first step
that still fails after its retries stops the run: a final ``error-<step>``
checkpoint is captured, no later step executes, and the outcome carries the
original exception object. Side effects of completed steps (an item already
in the cart, a message already sent) are not rolled back.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from sitewalker.config import WalkerConfig
from sitewalker.engine.checkpoint import Checkpoint, CheckpointRecorder
from sitewalker.engine.protocols import ActionUnit
from sitewalker.engine.retry import Retrier, RetryPolicy

logger = logging.getLogger("sitewalker.engine.pipeline")


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OutcomeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    PARTIAL_FAILURE = "partial_failure"  # failed after at least one step completed
    FATAL = "fatal"  # failed before any step completed


@dataclasses.dataclass
class Step:
    """A named unit of work in a workflow."""

    name: str
    unit: ActionUnit[Any]
    retry: RetryPolicy | bool | None = None  # True: use the config default policy
    checkpoint: bool = True
    save_as: str | None = None  # key in WorkflowOutcome.results

    def retry_policy(self, config: WalkerConfig) -> RetryPolicy | None:
        if self.retry is True:
            return config.retry_policy()
        if self.retry is False or self.retry is None:
            return None
        return self.retry

    async def invoke(
        self,
        config: WalkerConfig,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> Any:
        """Run the unit once, or under its retry policy when it has one."""
        policy = self.retry_policy(config)
        if policy is None:
            return await self.unit()
        return await Retrier(policy, sleep=sleep).run(self.unit, label=self.name)


@dataclasses.dataclass
class StepResult:
    """Result of executing a single workflow step."""

    index: int
    name: str
    passed: bool
    duration_seconds: float
    value: Any = None
    error: BaseException | None = None


@dataclasses.dataclass
class WorkflowOutcome:
    """Terminal result of one workflow run. Not persisted."""

    workflow: str
    status: OutcomeStatus
    value: Any = None
    error: BaseException | None = None
    failed_index: int | None = None
    failed_step: str | None = None
    completed_steps: list[str] = dataclasses.field(default_factory=list)
    step_results: list[StepResult] = dataclasses.field(default_factory=list)
    checkpoints: list[Checkpoint] = dataclasses.field(default_factory=list)
    results: dict[str, Any] = dataclasses.field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return not self.succeeded

    def unwrap(self) -> Any:
        """Return the value, or re-raise the causal error of the failed step."""
        if self.failed and self.error is not None:
            raise self.error
        return self.value

    def describe(self) -> str:
        if self.succeeded:
            return f"{self.workflow}: succeeded ({len(self.completed_steps)} steps)"
        return (
            f"{self.workflow}: {self.status.value} at step {self.failed_index} "
            f"'{self.failed_step}': {type(self.error).__name__}: {self.error}"
        )


class Workflow:
    """Builder for an ordered list of steps.

    Example::

        wf = (
            Workflow("checkout")
            .step("search", search)
            .step("add-to-cart", add_to_cart, retry=RetryPolicy(3, 1000))
            .step("place-order", place_order)
        )
        outcome = await wf.run(recorder)
    """

    def __init__(self, name: str, steps: list[Step] | None = None) -> None:
        if not name:
            raise ValueError("Workflow name must be non-empty")
        self.name = name
        self._steps: list[Step] = list(steps or [])

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def step(
        self,
        name: str,
        unit: ActionUnit[Any],
        *,
        retry: RetryPolicy | bool | None = None,
        checkpoint: bool = True,
        save_as: str | None = None,
    ) -> Workflow:
        """Append a step and return self for chaining.

        A step with ``save_as`` has its value kept in the outcome's
        ``results`` under that key, so several steps can contribute data.
        """
        if not callable(unit):
            raise TypeError(f"Step '{name}' unit must be callable, got {type(unit).__name__}")
        if any(s.name == name for s in self._steps):
            raise ValueError(f"Duplicate step name '{name}' in workflow '{self.name}'")
        if save_as and any(s.save_as == save_as for s in self._steps):
            raise ValueError(f"Duplicate result key '{save_as}' in workflow '{self.name}'")
        self._steps.append(Step(name=name, unit=unit, retry=retry, checkpoint=checkpoint, save_as=save_as))
        return self

    async def run(
        self,
        recorder: CheckpointRecorder | None = None,
        config: WalkerConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        on_step: Callable[[StepResult], None] | None = None,
    ) -> WorkflowOutcome:
        """Execute all steps and return the outcome. Never raises for step failures."""
        runner = WorkflowRunner(self, recorder=recorder, config=config, sleep=sleep, on_step=on_step)
        return await runner.run()

    async def execute(
        self,
        recorder: CheckpointRecorder | None = None,
        config: WalkerConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> Any:
        """Execute all steps; return the last value or raise the failing step's error."""
        outcome = await self.run(recorder=recorder, config=config, sleep=sleep)
        return outcome.unwrap()


class WorkflowRunner:
    """Executes one workflow, strictly sequentially, exactly once."""

    def __init__(
        self,
        workflow: Workflow,
        recorder: CheckpointRecorder | None = None,
        config: WalkerConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        on_step: Callable[[StepResult], None] | None = None,
    ) -> None:
        self._workflow = workflow
        self._recorder = recorder
        self._config = config or WalkerConfig()
        self._sleep = sleep
        self._on_step = on_step
        self._state = PipelineState.IDLE
        self._current_index: int | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def current_index(self) -> int | None:
        return self._current_index

    async def run(self) -> WorkflowOutcome:
        if self._state is not PipelineState.IDLE:
            raise RuntimeError(f"Workflow '{self._workflow.name}' runner already used ({self._state.value})")
        steps = self._workflow.steps
        if not steps:
            raise ValueError(f"Workflow '{self._workflow.name}' has no steps")

        name = self._workflow.name
        logger.info("Workflow %s starting (%d steps)", name, len(steps))
        start_time = time.monotonic()
        completed: list[str] = []
        results: list[StepResult] = []
        saved: dict[str, Any] = {}
        value: Any = None

        for index, step in enumerate(steps):
            self._state = PipelineState.RUNNING
            self._current_index = index
            logger.info("Workflow %s step %d/%d: %s", name, index + 1, len(steps), step.name)
            step_start = time.monotonic()
            try:
                value = await step.invoke(self._config, sleep=self._sleep)
            except Exception as exc:
                duration = round(time.monotonic() - step_start, 2)
                logger.error(
                    "Workflow %s failed at step %d (%s): %s: %s",
                    name, index, step.name, type(exc).__name__, exc,
                )
                result = StepResult(index, step.name, False, duration, error=exc)
                results.append(result)
                self._notify(result)
                await self._checkpoint(f"error-{step.name}")
                self._state = PipelineState.FAILED
                return WorkflowOutcome(
                    workflow=name,
                    status=OutcomeStatus.PARTIAL_FAILURE if completed else OutcomeStatus.FATAL,
                    error=exc,
                    failed_index=index,
                    failed_step=step.name,
                    completed_steps=completed,
                    step_results=results,
                    checkpoints=self._checkpoints(),
                    results=saved,
                    duration_seconds=round(time.monotonic() - start_time, 2),
                )

            result = StepResult(index, step.name, True, round(time.monotonic() - step_start, 2), value=value)
            results.append(result)
            completed.append(step.name)
            if step.save_as:
                saved[step.save_as] = value
            self._notify(result)
            if step.checkpoint:
                await self._checkpoint(step.name)

        self._state = PipelineState.SUCCEEDED
        duration = round(time.monotonic() - start_time, 2)
        logger.info("Workflow %s succeeded in %.2fs", name, duration)
        return WorkflowOutcome(
            workflow=name,
            status=OutcomeStatus.SUCCEEDED,
            value=value,
            completed_steps=completed,
            step_results=results,
            checkpoints=self._checkpoints(),
            results=saved,
            duration_seconds=duration,
        )

    async def _checkpoint(self, label: str) -> None:
        if self._recorder is None:
            return
        # Checkpoint errors never fail the workflow.
        try:
            await self._recorder.checkpoint(label)
        except Exception as exc:
            logger.warning("Checkpoint '%s' raised: %s", label, exc)

    def _checkpoints(self) -> list[Checkpoint]:
        return self._recorder.checkpoints if self._recorder is not None else []

    def _notify(self, result: StepResult) -> None:
        if self._on_step is None:
            return
        try:
            self._on_step(result)
        except Exception as exc:
            logger.warning("on_step callback failed: %s", exc)
