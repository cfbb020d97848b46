"""Collect scanned web applications and their findings from WAS."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from graph_qualys.graph.converters import (
    convert_web_app_to_entity,
    create_has_relationship,
    create_web_app_finding_entity,
    web_app_entity_key,
)
from graph_qualys.provider import QualysAPIError
from graph_qualys.steps.account import get_account_entity
from graph_qualys.steps.context import (
    WEB_APP_FINDING_KEYS_BY_QID,
    WEB_APP_IDS,
    StepContext,
)

logger = logging.getLogger(__name__)


async def fetch_web_apps(context: StepContext) -> None:
    account = get_account_entity(context)
    job_state = context.job_state
    web_app_ids: list[int] = []

    async for web_app in context.client.iterate_web_apps(
        filters=[("isScanned", "EQUALS", "true")],
        limit=context.settings.web_app_page_size,
    ):
        entity = convert_web_app_to_entity(web_app)
        if job_state.has_key(entity.key):
            continue
        job_state.add_entity(entity)
        job_state.add_relationships([create_has_relationship(account, entity)])
        web_app_ids.append(web_app["id"])

    scanned = await _record_last_scans(context, web_app_ids)
    job_state.set_data(WEB_APP_IDS, web_app_ids)
    logger.info(
        "Collected %d web apps (%d with a last scan)", len(web_app_ids), scanned,
    )


async def _record_last_scans(context: StepContext, web_app_ids: list[int]) -> int:
    """Fetch web app details with a bounded pool and record each last scan.

    Every call still goes through the client's one executor, so the shared
    rate limit state governs the pool as a whole. An API error for one web
    app is logged and skipped; any other failure cancels the remaining
    fetches and fails the step.
    """
    semaphore = asyncio.Semaphore(max(context.settings.web_app_concurrency, 1))
    scanned = 0

    async def _process(web_app_id: int) -> None:
        nonlocal scanned
        try:
            async with semaphore:
                details: dict[str, Any] | None = await context.client.fetch_web_app(web_app_id)
        except QualysAPIError as exc:
            logger.warning("Unable to fetch details for web app %s: %s", web_app_id, exc)
            return
        last_scan_id = ((details or {}).get("lastScan") or {}).get("id")
        if last_scan_id is None:
            return
        scanned += 1
        entity = context.job_state.find_entity(web_app_entity_key(web_app_id))
        if entity is not None:
            entity.properties["lastScanId"] = last_scan_id
            entity.properties["isScanned"] = True

    async with asyncio.TaskGroup() as tg:
        for web_app_id in web_app_ids:
            tg.create_task(_process(web_app_id))
    return scanned


async def fetch_web_app_findings(context: StepContext) -> None:
    job_state = context.job_state
    web_app_ids: list[int] = job_state.get_data(WEB_APP_IDS, [])
    finding_keys_by_qid: dict[int, list[str]] = defaultdict(list)
    findings = 0

    async for raw_finding in context.client.iterate_web_app_findings(
        web_app_ids, limit=context.settings.web_app_page_size,
    ):
        finding = create_web_app_finding_entity(raw_finding)
        if job_state.has_key(finding.key):
            continue
        job_state.add_entity(finding)

        web_app_id = (raw_finding.get("webApp") or {}).get("id")
        web_app = job_state.find_entity(web_app_entity_key(web_app_id))
        if web_app is not None:
            job_state.add_relationships([create_has_relationship(web_app, finding)])
        if raw_finding.get("qid") is not None:
            finding_keys_by_qid[int(raw_finding["qid"])].append(finding.key)
        findings += 1

    job_state.set_data(WEB_APP_FINDING_KEYS_BY_QID, dict(finding_keys_by_qid))
    logger.info("Collected %d web app findings", findings)
