"""Collect host assets from Asset Management."""

from __future__ import annotations

import logging

from graph_qualys.graph.converters import convert_host_asset_to_entity, create_has_relationship
from graph_qualys.steps.account import get_account_entity
from graph_qualys.steps.context import HOST_IDS, StepContext

logger = logging.getLogger(__name__)


async def fetch_hosts(context: StepContext) -> None:
    account = get_account_entity(context)
    job_state = context.job_state
    host_ids: list[int] = []

    async for host_asset in context.client.iterate_host_assets(
        limit=context.settings.host_asset_page_size,
    ):
        # Assets without a QWEB host ID are unknown to the VM module
        if not host_asset.get("qwebHostId"):
            continue
        host = convert_host_asset_to_entity(host_asset)
        if job_state.has_key(host.key):
            logger.debug("Skipping duplicate host asset %s", host.key)
            continue
        job_state.add_entity(host)
        job_state.add_relationships([create_has_relationship(account, host)])
        host_ids.append(int(host_asset["qwebHostId"]))

    job_state.set_data(HOST_IDS, host_ids)
    logger.info("Collected %d host assets", len(host_ids))
