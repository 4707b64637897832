"""Workflow definitions -- declarative site workflows loaded from YAML.

A definition supplies the site-specific knowledge (URLs, selectors, which
signals mean "done") as data; the engine supplies the behaviour. Example::

    workflow:
      name: amazon-add-to-cart
      start_url: https://www.amazon.com
      retry: {max_attempts: 3, base_delay_ms: 1000}
      vars:
        item: Airpods
      steps:
        - name: search
          action: type
          selector: "#twotabsearchtextbox"
          text: "{{item}}"
          submit: true
        - name: add-to-cart
          action: click
          selectors: ["#add-to-cart-button", "#one-click-button"]
        - name: decline-coverage
          action: race
          fallback_ms: 5000
          signals:
            - {name: no-coverage, selector: "#attachSiNoCoverage", click: true}
            - {name: si-no-coverage, selector: "#siNoCoverage", click: true}

``{{dotpath}}`` placeholders resolve against ``vars`` merged with
variables passed at load time (load-time values win). A step with
``save_as: key`` stores its value in the run's ``results`` under ``key``.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

import yaml

from sitewalker.engine.actions import PageActions
from sitewalker.engine.checkpoint import CheckpointRecorder
from sitewalker.engine.pipeline import Workflow
from sitewalker.engine.protocols import ElementState, parse_state
from sitewalker.engine.race import SuccessSignal
from sitewalker.engine.retry import RetryPolicy
from sitewalker.errors import WorkflowDefinitionError
from sitewalker.models import DEFAULT_RACE_FALLBACK_MS

logger = logging.getLogger("sitewalker.workflows")

_MISSING = object()  # Sentinel for "dotpath not found"

# {{ a.b.0 }} -- whitespace inside the braces is ignored
_PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_MAX_TEMPLATE_PASSES = 5

# Required parameters per action (beyond name/action)
ACTIONS: dict[str, tuple[str, ...]] = {
    "goto": ("url",),
    "click": ("selector",),
    "fill": ("selector", "value"),
    "type": ("text",),
    "press": ("key",),
    "wait": ("selector",),
    "wait_network_idle": (),
    "wait_load": (),
    "wait_url": ("pattern",),
    "race": ("signals",),
    "extract_text": ("selector",),
    "extract_list": ("items", "fields"),
    "extract_fields": ("fields",),
    "extract_json": (),
    "dismiss_all": ("selector",),
    "checkpoint": (),
}

# Actions whose target may be given as an ordered ``selectors`` list
_MULTI_SELECTOR_ACTIONS = {"click", "fill", "type", "wait", "extract_text", "extract_json"}

# Actions that honour ``optional: true``
_OPTIONAL_ACTIONS = {"click", "fill", "wait", "extract_text", "extract_list", "extract_fields"}

# Step keys that are not action parameters
_STEP_KEYS = ("name", "action", "retry", "checkpoint", "optional", "save_as")


@dataclasses.dataclass
class StepDefinition:
    name: str
    action: str
    params: dict[str, Any]
    retry: RetryPolicy | bool | None = None
    checkpoint: bool = True
    optional: bool = False
    save_as: str | None = None

    @property
    def selectors(self) -> list[str]:
        """Ordered alternative descriptors (first match wins)."""
        if "selectors" in self.params:
            return list(self.params["selectors"])
        if "selector" in self.params:
            return [self.params["selector"]]
        return []


@dataclasses.dataclass
class WorkflowDefinition:
    name: str
    steps: list[StepDefinition]
    start_url: str | None = None
    variables: dict[str, Any] = dataclasses.field(default_factory=dict)
    source: Path | None = None


# ── Loading ──────────────────────────────────────────────────────────────


def load_workflow_file(path: Path, variables: dict[str, Any] | None = None) -> WorkflowDefinition:
    """Load and validate a workflow definition file."""
    if not path.is_file():
        raise WorkflowDefinitionError(f"Workflow file not found: {path}")
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise WorkflowDefinitionError(f"YAML parse error in {path}: {exc}") from exc
    definition = parse_workflow(data, variables)
    definition.source = path
    return definition


def parse_workflow(data: Any, variables: dict[str, Any] | None = None) -> WorkflowDefinition:
    """Build a WorkflowDefinition from parsed YAML. Raises WorkflowDefinitionError."""
    errors = [i for i in validate_workflow_data(data) if i["severity"] == "error"]
    if errors:
        details = "\n".join(f"  {i['field']}: {i['message']}" for i in errors)
        raise WorkflowDefinitionError(f"Invalid workflow definition:\n{details}")

    wf = data.get("workflow", data)
    template_vars = dict(wf.get("vars") or {})
    template_vars.update(variables or {})
    wf = resolve_templates({k: v for k, v in wf.items() if k != "vars"}, template_vars)

    default_retry = _parse_retry(wf.get("retry"))
    steps = []
    for raw in wf["steps"]:
        params = {k: v for k, v in raw.items() if k not in _STEP_KEYS}
        retry = _parse_retry(raw["retry"]) if "retry" in raw else default_retry
        steps.append(
            StepDefinition(
                name=raw["name"],
                action=raw["action"],
                params=params,
                retry=retry,
                checkpoint=bool(raw.get("checkpoint", True)),
                optional=bool(raw.get("optional", False)),
                save_as=raw.get("save_as"),
            )
        )
    return WorkflowDefinition(
        name=str(wf["name"]),
        steps=steps,
        start_url=wf.get("start_url"),
        variables=template_vars,
    )


def _parse_retry(value: Any) -> RetryPolicy | bool | None:
    if value is None or isinstance(value, bool):
        return value
    return RetryPolicy(
        max_attempts=int(value.get("max_attempts", 3)),
        base_delay_ms=int(value.get("base_delay_ms", 1_000)),
    )


# ── Validation ───────────────────────────────────────────────────────────


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def validate_workflow_data(data: Any) -> list[dict[str, Any]]:
    """Validate parsed workflow YAML. Returns a list of issue dicts."""
    issues: list[dict[str, Any]] = []

    def error(field: str, message: str) -> None:
        issues.append({"severity": "error", "field": field, "message": message})

    def warning(field: str, message: str) -> None:
        issues.append({"severity": "warning", "field": field, "message": message})

    if not isinstance(data, dict):
        error("root", "Workflow file must be a YAML mapping")
        return issues
    wf = data.get("workflow", data)
    if not isinstance(wf, dict):
        error("workflow", "'workflow' must be a mapping")
        return issues

    if not wf.get("name"):
        error("workflow.name", "Missing required field: workflow.name")
    elif not isinstance(wf["name"], str):
        error("workflow.name", "'name' must be a string")
    if "retry" in wf:
        _validate_retry(wf["retry"], "workflow.retry", error)
    if "vars" in wf and not isinstance(wf["vars"], dict):
        error("workflow.vars", "'vars' must be a mapping")

    steps = wf.get("steps")
    if not isinstance(steps, list) or not steps:
        error("workflow.steps", "Workflow must define a non-empty 'steps' list")
        return issues

    seen: set[str] = set()
    result_keys: set[str] = set()
    for i, step in enumerate(steps):
        loc = f"steps[{i}]"
        if not isinstance(step, dict):
            error(loc, "Step must be a mapping")
            continue
        name = step.get("name")
        if not name:
            error(f"{loc}.name", "Missing required field: name")
        elif not isinstance(name, str):
            error(f"{loc}.name", "'name' must be a string")
        elif name in seen:
            error(f"{loc}.name", f"Duplicate step name '{name}'")
        else:
            seen.add(name)

        action = step.get("action")
        if not isinstance(action, str) or action not in ACTIONS:
            error(f"{loc}.action", f"Unknown action '{action}' (expected one of: {', '.join(ACTIONS)})")
            continue

        for param in ACTIONS[action]:
            if param == "selector" and action in _MULTI_SELECTOR_ACTIONS:
                if not step.get("selector") and not step.get("selectors"):
                    error(f"{loc}.selector", f"'{action}' requires 'selector' or 'selectors'")
                continue
            if param not in step:
                error(f"{loc}.{param}", f"'{action}' requires '{param}'")

        if "selector" in step and not _is_text(step["selector"]):
            error(f"{loc}.selector", "'selector' must be a non-empty string; use 'selectors' for alternatives")
        if "selectors" in step:
            sels = step["selectors"]
            if not isinstance(sels, list) or not sels or not all(_is_text(s) for s in sels):
                error(f"{loc}.selectors", "'selectors' must be a non-empty list of strings")
            if "selector" in step:
                warning(f"{loc}.selector", "Both 'selector' and 'selectors' given; 'selectors' wins")

        if "state" in step:
            _validate_element_state(step["state"], f"{loc}.state", error)

        for key in ("timeout_ms", "fallback_ms"):
            if key in step and not _is_positive_int(step[key]):
                error(f"{loc}.{key}", f"'{key}' must be a positive integer")

        if "retry" in step:
            _validate_retry(step["retry"], f"{loc}.retry", error)

        if "save_as" in step:
            key = step["save_as"]
            if not _is_text(key):
                error(f"{loc}.save_as", "'save_as' must be a non-empty string")
            elif key in result_keys:
                error(f"{loc}.save_as", f"Duplicate result key '{key}'")
            else:
                result_keys.add(key)

        if action == "race":
            _validate_signals(step.get("signals"), loc, error)
        elif action == "extract_list":
            items = step.get("items")
            if "items" in step and not (_is_text(items) or (
                isinstance(items, list) and items and all(_is_text(s) for s in items)
            )):
                error(f"{loc}.items", "'items' must be a selector or a non-empty list of selectors")
        if action in ("extract_list", "extract_fields") and "fields" in step:
            _validate_fields(step["fields"], f"{loc}.fields", error)
        if "default" in step and not isinstance(step["default"], str):
            error(f"{loc}.default", "'default' must be a string")

        if step.get("optional") and action not in _OPTIONAL_ACTIONS:
            warning(f"{loc}.optional", f"'optional' has no effect on '{action}'")

    return issues


def _validate_retry(value: Any, field: str, error: Callable[[str, str], None]) -> None:
    if value is None or isinstance(value, bool):
        return
    if not isinstance(value, dict):
        error(field, "'retry' must be true/false or a mapping")
        return
    try:
        _parse_retry(value)
    except (TypeError, ValueError) as exc:
        error(field, f"Invalid retry policy: {exc}")


def _validate_element_state(value: Any, field: str, error: Callable[[str, str], None]) -> None:
    if not isinstance(value, str):
        error(field, "'state' must be a string")
        return
    try:
        state = parse_state(value)
    except ValueError as exc:
        error(field, str(exc))
        return
    if not isinstance(state, ElementState):
        error(field, f"'{state.value}' is a page state; use wait_network_idle or wait_load")


def _validate_signals(signals: Any, loc: str, error: Callable[[str, str], None]) -> None:
    if not isinstance(signals, list) or not signals:
        error(f"{loc}.signals", "'race' requires a non-empty 'signals' list")
        return
    names: set[str] = set()
    for j, sig in enumerate(signals):
        sloc = f"{loc}.signals[{j}]"
        if not isinstance(sig, dict):
            error(sloc, "Signal must be a mapping")
            continue
        selector = sig.get("selector")
        if not selector:
            error(f"{sloc}.selector", "Signal requires 'selector'")
        elif not isinstance(selector, str):
            error(f"{sloc}.selector", "Signal 'selector' must be a string")
            selector = None

        if "name" in sig and not _is_text(sig["name"]):
            error(f"{sloc}.name", "Signal 'name' must be a non-empty string")
        else:
            name = sig.get("name") or selector
            if name in names:
                error(f"{sloc}.name", f"Duplicate signal name '{name}'")
            elif name:
                names.add(name)

        if "timeout_ms" in sig and not _is_positive_int(sig["timeout_ms"]):
            error(f"{sloc}.timeout_ms", "'timeout_ms' must be a positive integer")
        if "state" in sig:
            _validate_element_state(sig["state"], f"{sloc}.state", error)


def _validate_fields(fields: Any, field: str, error: Callable[[str, str], None]) -> None:
    if not isinstance(fields, dict) or not fields:
        error(field, "'fields' must be a non-empty mapping of name to selector")
        return
    for name, spec in fields.items():
        if _is_text(spec):
            continue
        if isinstance(spec, dict) and _is_text(spec.get("selector")) and (
            "attribute" not in spec or _is_text(spec["attribute"])
        ):
            continue
        error(f"{field}.{name}", "Field must be a selector or a mapping with 'selector' and optional 'attribute'")


# ── Template resolution ──────────────────────────────────────────────────


def resolve_templates(obj: Any, template_vars: Mapping[str, Any]) -> Any:
    """Return a copy of ``obj`` with ``{{dotpath}}`` placeholders filled in.

    Strings are rendered; mappings and lists are walked; anything else is
    returned unchanged.
    """
    if isinstance(obj, str):
        return _render(obj, template_vars)
    if isinstance(obj, dict):
        return {key: resolve_templates(value, template_vars) for key, value in obj.items()}
    if isinstance(obj, list):
        return [resolve_templates(item, template_vars) for item in obj]
    return obj


def _render(text: str, template_vars: Mapping[str, Any]) -> str:
    """Fill the placeholders in one string.

    A variable's value may contain placeholders of its own, so rendering
    repeats until the text stops changing, for at most
    ``_MAX_TEMPLATE_PASSES`` rounds. ``None`` renders as an empty string.
    Placeholders that do not resolve stay as written and are logged once
    each.
    """
    unresolved: set[str] = set()

    def fill(match: re.Match[str]) -> str:
        path = match.group(1)
        value = _lookup(template_vars, path)
        if value is _MISSING:
            unresolved.add(path)
            return match.group(0)
        return "" if value is None else str(value)

    for _ in range(_MAX_TEMPLATE_PASSES):
        rendered = _PLACEHOLDER.sub(fill, text)
        if rendered == text:
            break
        text = rendered

    for path in sorted(unresolved):
        logger.warning("Unresolved template variable: {{%s}}", path)
    return text


def _lookup(data: Any, path: str) -> Any:
    """Follow ``a.b.0.c`` through nested mappings and lists; ``_MISSING`` on a miss."""
    node = data
    for key in path.split("."):
        if isinstance(node, Mapping):
            if key not in node:
                return _MISSING
            node = node[key]
        elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
        else:
            return _MISSING
    return node


# ── Compilation ──────────────────────────────────────────────────────────


def build_workflow(
    definition: WorkflowDefinition,
    actions: PageActions,
    recorder: CheckpointRecorder | None = None,
) -> Workflow:
    """Compile a definition into a Workflow bound to ``actions``' page.

    If the definition has a ``start_url``, an implicit first step named
    ``open`` navigates there.
    """
    workflow = Workflow(definition.name)
    if definition.start_url and not any(s.name == "open" for s in definition.steps):
        url = definition.start_url

        async def _open() -> None:
            await actions.goto(url)

        workflow.step("open", _open, checkpoint=False)

    for step in definition.steps:
        unit = _compile_step(step, definition, actions, recorder)
        # An explicit checkpoint action already captured its own screenshot
        checkpoint = step.checkpoint and step.action != "checkpoint"
        workflow.step(step.name, unit, retry=step.retry, checkpoint=checkpoint, save_as=step.save_as)
    return workflow


def _compile_step(
    step: StepDefinition,
    definition: WorkflowDefinition,
    actions: PageActions,
    recorder: CheckpointRecorder | None,
) -> Callable[[], Awaitable[Any]]:
    p = step.params
    timeout = p.get("timeout_ms")
    selectors = step.selectors

    if step.action == "goto":
        url = urljoin(definition.start_url or "", p["url"])
        wait_for_idle = bool(p.get("wait_for_idle", True))
        return lambda: actions.goto(url, wait_for_idle=wait_for_idle, timeout_ms=timeout)
    if step.action == "click":
        return lambda: actions.click(selectors, timeout, optional=step.optional)
    if step.action == "fill":
        value = str(p["value"])
        return lambda: actions.fill(selectors, value, timeout, optional=step.optional)
    if step.action == "type":
        text = str(p["text"])
        target = selectors or None
        submit = bool(p.get("submit", False))
        return lambda: actions.type_text(text, target, submit=submit, timeout_ms=timeout)
    if step.action == "press":
        key = str(p["key"])
        return lambda: actions.press(key)
    if step.action == "wait":
        state = p.get("state", "visible")
        return lambda: actions.wait(selectors, state, timeout, optional=step.optional)
    if step.action == "wait_network_idle":
        return lambda: actions.waiter.wait_for_network_idle(timeout)
    if step.action == "wait_load":
        return lambda: actions.waiter.wait_for_load(timeout)
    if step.action == "wait_url":
        pattern = p["pattern"]
        if p.get("regex"):
            pattern = re.compile(pattern)
        return lambda: actions.waiter.wait_for_url(pattern, timeout)
    if step.action == "race":
        fallback = p.get("fallback_ms", DEFAULT_RACE_FALLBACK_MS)
        signals = [
            SuccessSignal(
                name=sig.get("name") or sig["selector"],
                descriptor=sig["selector"],
                state=sig.get("state", "visible"),
                timeout_ms=sig.get("timeout_ms", fallback),
                on_match=actions.click_handle if sig.get("click") else None,
            )
            for sig in p["signals"]
        ]
        return lambda: actions.race(signals, fallback)
    if step.action == "extract_text":
        return lambda: actions.extract_text(selectors, timeout, optional=step.optional)
    if step.action == "extract_list":
        items = p["items"]
        fields = dict(p["fields"])
        default = p.get("default", "")
        return lambda: actions.extract_list(items, fields, timeout, optional=step.optional, default=default)
    if step.action == "extract_fields":
        fields = dict(p["fields"])
        default = p.get("default", "")
        return lambda: actions.extract_fields(fields, timeout, optional=step.optional, default=default)
    if step.action == "extract_json":
        target = selectors or "body"
        return lambda: actions.extract_json(target, timeout)
    if step.action == "dismiss_all":
        descriptor = p["selector"]
        return lambda: actions.dismiss_all(descriptor)
    if step.action == "checkpoint":
        label = str(p.get("label", step.name))

        async def _capture() -> None:
            if recorder is not None:
                await recorder.checkpoint(label)

        return _capture
    raise WorkflowDefinitionError(f"Unknown action '{step.action}' in step '{step.name}'")
