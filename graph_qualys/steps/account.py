"""Verify credentials and create the account entity every other step hangs off."""

from __future__ import annotations

import logging

from graph_qualys.graph.converters import create_account_entity
from graph_qualys.graph.entities import Entity
from graph_qualys.steps.context import ACCOUNT_ENTITY_KEY, StepContext

logger = logging.getLogger(__name__)


async def fetch_account(context: StepContext) -> None:
    await context.client.verify_authentication()
    portal_info = await context.client.fetch_portal_info()

    account = create_account_entity(
        context.settings.qualys_api_url,
        context.settings.qualys_username,
        portal_info,
    )
    context.job_state.add_entity(account)
    context.job_state.set_data(ACCOUNT_ENTITY_KEY, account.key)
    logger.info("Authenticated as %s", context.settings.qualys_username)


def get_account_entity(context: StepContext) -> Entity:
    """The account entity created by :func:`fetch_account`."""
    key = context.job_state.get_data(ACCOUNT_ENTITY_KEY)
    account = context.job_state.find_entity(key) if key else None
    if account is None:
        raise RuntimeError("Account entity not found; run fetch-account first")
    return account
