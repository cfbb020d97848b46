"""Run the integration steps in dependency order."""

from __future__ import annotations

import logging
import time
from typing import Iterable, Sequence

from graph_qualys.config import Settings
from graph_qualys.graph.job_state import JobState
from graph_qualys.provider import QualysAPIClient
from graph_qualys.services.metrics import ExecutorMetrics
from graph_qualys.services.step_context import step_id_var
from graph_qualys.steps.account import fetch_account
from graph_qualys.steps.context import Step, StepContext
from graph_qualys.steps.detections import fetch_host_detections
from graph_qualys.steps.hosts import fetch_hosts
from graph_qualys.steps.vulnerabilities import fetch_vulnerabilities
from graph_qualys.steps.web_apps import fetch_web_app_findings, fetch_web_apps

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILURE = "failure"
SKIPPED = "skipped"

STEPS: list[Step] = [
    Step("fetch-account", "Fetch Account", fetch_account),
    Step("fetch-hosts", "Fetch Hosts", fetch_hosts, ("fetch-account",)),
    Step(
        "fetch-host-detections", "Fetch Host Detections",
        fetch_host_detections, ("fetch-hosts",),
    ),
    Step("fetch-web-apps", "Fetch Web Apps", fetch_web_apps, ("fetch-account",)),
    Step(
        "fetch-web-app-findings", "Fetch Web App Findings",
        fetch_web_app_findings, ("fetch-web-apps",),
    ),
    Step(
        "fetch-vulnerabilities", "Fetch Vulnerabilities",
        fetch_vulnerabilities, ("fetch-host-detections", "fetch-web-app-findings"),
    ),
]


def select_steps(steps: Sequence[Step], only: Iterable[str] | None = None) -> list[Step]:
    """Order-preserving subset of *steps*: those in *only* plus what they depend on.

    Raises ``ValueError`` for an unknown step ID or a step listed before one
    of its dependencies.
    """
    by_id = {step.id: step for step in steps}
    seen: set[str] = set()
    for step in steps:
        missing = [dep for dep in step.depends_on if dep not in seen]
        if missing:
            raise ValueError(f"Step {step.id} depends on {missing} which must come first")
        seen.add(step.id)

    if only is None:
        return list(steps)

    wanted: set[str] = set()
    pending = list(only)
    while pending:
        step_id = pending.pop()
        if step_id not in by_id:
            raise ValueError(f"Unknown step: {step_id}")
        if step_id not in wanted:
            wanted.add(step_id)
            pending.extend(by_id[step_id].depends_on)
    return [step for step in steps if step.id in wanted]


async def run_steps(
    context: StepContext,
    steps: Sequence[Step] | None = None,
    only: Iterable[str] | None = None,
) -> dict[str, str]:
    """Run each step, isolating failures.

    A failed step is logged and every step depending on it is skipped.
    Returns ``{step_id: "success" | "failure" | "skipped"}``.
    """
    results: dict[str, str] = {}

    for step in select_steps(steps if steps is not None else STEPS, only):
        blocked = [dep for dep in step.depends_on if results.get(dep) != SUCCESS]
        if blocked:
            logger.warning("Skipping %s: dependencies did not succeed %s", step.id, blocked)
            results[step.id] = SKIPPED
            continue

        token = step_id_var.set(step.id)
        step_start = time.monotonic()
        logger.info("=== %s ===", step.name)
        try:
            await step.fn(context)
        except Exception:
            elapsed = time.monotonic() - step_start
            logger.exception("Step %s FAILED after %.1fs", step.id, elapsed)
            results[step.id] = FAILURE
        else:
            elapsed = time.monotonic() - step_start
            logger.info("Step %s completed in %.1fs", step.id, elapsed)
            results[step.id] = SUCCESS
        finally:
            step_id_var.reset(token)

    return results


async def run_integration(
    settings: Settings,
    only: Iterable[str] | None = None,
    *,
    job_state: JobState | None = None,
    metrics: ExecutorMetrics | None = None,
    **client_kwargs,
) -> tuple[dict[str, str], JobState, ExecutorMetrics]:
    """Build a client from *settings* and run the selected steps with it."""
    job_state = job_state if job_state is not None else JobState()
    metrics = metrics if metrics is not None else ExecutorMetrics()

    async with QualysAPIClient.from_settings(
        settings, observers=[metrics], **client_kwargs,
    ) as client:
        context = StepContext(client=client, job_state=job_state, settings=settings)
        results = await run_steps(context, only=only)

    return results, job_state, metrics
