"""SiteWalker engine -- resilient action orchestration.

Provides the building blocks every site workflow shares:
- ConditionWaiter: bounded element/page waits that report timeouts as negative results
- Retrier / retry_with_backoff: exponential backoff around fallible units
- RaceComposer / await_any_signal: proceed on the first of several equivalent signals
- CheckpointRecorder: best-effort labeled screenshots per stage
- Workflow / WorkflowRunner: ordered steps with uniform failure propagation
- PageActions: generic click/fill/type/wait and extraction units over opaque descriptors
- BrowserSession: Playwright lifecycle and single-owner page hand-off
"""

from sitewalker.engine.actions import PageActions
from sitewalker.engine.browser_session import BrowserSession, WorkflowContext
from sitewalker.engine.checkpoint import Checkpoint, CheckpointRecorder
from sitewalker.engine.pipeline import (
    OutcomeStatus,
    PipelineState,
    Step,
    StepResult,
    Workflow,
    WorkflowOutcome,
    WorkflowRunner,
)
from sitewalker.engine.protocols import BrowserPage, ElementState, PageState, WaitSpec
from sitewalker.engine.race import RaceComposer, RaceResult, SuccessSignal, await_any_signal
from sitewalker.engine.retry import Retrier, RetryPolicy, retry_with_backoff
from sitewalker.engine.waiter import ConditionWaiter

__all__ = [
    "BrowserPage",
    "BrowserSession",
    "Checkpoint",
    "CheckpointRecorder",
    "ConditionWaiter",
    "ElementState",
    "OutcomeStatus",
    "PageActions",
    "PageState",
    "PipelineState",
    "RaceComposer",
    "RaceResult",
    "Retrier",
    "RetryPolicy",
    "Step",
    "StepResult",
    "SuccessSignal",
    "WaitSpec",
    "Workflow",
    "WorkflowContext",
    "WorkflowOutcome",
    "WorkflowRunner",
    "await_any_signal",
    "retry_with_backoff",
]
