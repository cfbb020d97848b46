"""Look up the knowledge base entry for every QID a finding referenced."""

from __future__ import annotations

import logging

from graph_qualys.graph.converters import (
    create_finding_is_vuln_relationship,
    create_vulnerability_entity,
)
from graph_qualys.steps.context import (
    HOST_FINDING_KEYS_BY_QID,
    WEB_APP_FINDING_KEYS_BY_QID,
    StepContext,
)

logger = logging.getLogger(__name__)


async def fetch_vulnerabilities(context: StepContext) -> None:
    job_state = context.job_state
    host_findings: dict[int, list[str]] = job_state.get_data(HOST_FINDING_KEYS_BY_QID, {})
    web_app_findings: dict[int, list[str]] = job_state.get_data(WEB_APP_FINDING_KEYS_BY_QID, {})
    qids = sorted(set(host_findings) | set(web_app_findings))
    vulns = 0

    async for raw_vuln in context.client.iterate_vulnerabilities(
        qids, batch_size=context.settings.vuln_batch_size,
    ):
        vuln = create_vulnerability_entity(raw_vuln, context.settings.qualys_api_url)
        if job_state.has_key(vuln.key):
            continue
        job_state.add_entity(vuln)
        vulns += 1

        qid = int(raw_vuln["QID"])
        for finding_key in host_findings.get(qid, []) + web_app_findings.get(qid, []):
            finding = job_state.find_entity(finding_key)
            if finding is not None:
                job_state.add_relationships([create_finding_is_vuln_relationship(finding, vuln)])

    logger.info("Collected %d vulnerabilities for %d QIDs", vulns, len(qids))
