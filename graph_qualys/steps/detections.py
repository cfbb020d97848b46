"""Collect VM detections (host findings) for the hosts collected earlier."""

from __future__ import annotations

import logging
from collections import defaultdict

from graph_qualys.graph.converters import (
    create_has_relationship,
    create_host_finding_entity,
    host_entity_key,
    host_targets,
)
from graph_qualys.steps.context import HOST_FINDING_KEYS_BY_QID, HOST_IDS, StepContext

logger = logging.getLogger(__name__)


async def fetch_host_detections(context: StepContext) -> None:
    job_state = context.job_state
    host_ids: list[int] = job_state.get_data(HOST_IDS, [])
    finding_keys_by_qid: dict[int, list[str]] = defaultdict(list)
    findings = 0

    async for host, detections in context.client.iterate_host_detections(
        host_ids, batch_size=context.settings.detection_batch_size,
    ):
        host_entity = job_state.find_entity(host_entity_key(host.get("ID")))
        if host_entity is None:
            logger.warning("Detections returned for unknown host %s", host.get("ID"))
        targets = host_targets(host)

        for detection in detections:
            finding = create_host_finding_entity(host, detection, targets)
            if job_state.has_key(finding.key):
                continue
            job_state.add_entity(finding)
            if host_entity is not None:
                job_state.add_relationships([create_has_relationship(host_entity, finding)])
            if detection.get("QID") is not None:
                finding_keys_by_qid[int(detection["QID"])].append(finding.key)
            findings += 1

    job_state.set_data(HOST_FINDING_KEYS_BY_QID, dict(finding_keys_by_qid))
    logger.info(
        "Collected %d host findings across %d QIDs for %d hosts",
        findings, len(finding_keys_by_qid), len(host_ids),
    )
