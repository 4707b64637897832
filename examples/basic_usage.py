#!/usr/bin/env python3
"""Programmatic workflow example.

Builds a workflow in code instead of YAML:

* each step is an async unit closing over the page actions
* the add-to-cart step retries with exponential backoff
* the protection-plan dialog is handled by racing equivalent signals
* a checkpoint screenshot is captured after every step

Usage: python examples/basic_usage.py "usb-c cable"
"""

from __future__ import annotations

import asyncio
import logging
import sys

from sitewalker.config import WalkerConfig
from sitewalker.engine import BrowserSession, RetryPolicy, SuccessSignal, Workflow


async def main(item: str) -> int:
    logging.basicConfig(level=logging.INFO, format="%(name)s  %(message)s")
    config = WalkerConfig(headless=False, screenshot_prefix="amazon")

    async with BrowserSession(config) as session:
        async with session.claim("add-to-cart") as ctx:
            actions = ctx.actions

            async def open_home() -> None:
                await actions.goto("https://www.amazon.com")

            async def search() -> None:
                await actions.type_text(item, "#twotabsearchtextbox", submit=True)

            async def open_first_result() -> None:
                await actions.click('div[data-component-type="s-search-result"] h2 a', timeout_ms=10_000)
                await actions.waiter.wait_for_load()

            async def add_to_cart() -> str | None:
                return await actions.click(
                    ["#add-to-cart-button", "#one-click-button", 'input[name="submit.add-to-cart"]'],
                    timeout_ms=2_000,
                )

            async def decline_coverage() -> None:
                await actions.race(
                    [
                        SuccessSignal("attach", "#attachSiNoCoverage", on_match=actions.click_handle),
                        SuccessSignal("side-sheet", "#siNoCoverage", on_match=actions.click_handle),
                    ],
                    fallback_ms=5_000,
                )

            workflow = (
                Workflow("add-to-cart")
                .step("home", open_home, checkpoint=False)
                .step("search", search)
                .step("first-result", open_first_result, retry=True)
                .step("add-to-cart", add_to_cart, retry=RetryPolicy(max_attempts=3, base_delay_ms=1_000))
                .step("decline-coverage", decline_coverage)
            )
            outcome = await workflow.run(recorder=ctx.recorder, config=config)

    print(outcome.describe())
    for checkpoint in outcome.checkpoints:
        print(f"  {checkpoint.label}: {checkpoint.path}")
    return 0 if outcome.succeeded else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "Airpods")))
