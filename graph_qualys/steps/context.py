"""Shared types for integration steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from graph_qualys.config import Settings
from graph_qualys.graph.job_state import JobState
from graph_qualys.provider import QualysAPIClient

# Job state data keys handed from one step to the next
ACCOUNT_ENTITY_KEY = "account_entity_key"
HOST_IDS = "host_ids"
HOST_FINDING_KEYS_BY_QID = "host_finding_keys_by_qid"
WEB_APP_IDS = "web_app_ids"
WEB_APP_FINDING_KEYS_BY_QID = "web_app_finding_keys_by_qid"


@dataclass
class StepContext:
    client: QualysAPIClient
    job_state: JobState
    settings: Settings


StepFn = Callable[[StepContext], Awaitable[None]]


@dataclass(frozen=True)
class Step:
    id: str
    name: str
    fn: StepFn
    depends_on: tuple[str, ...] = field(default=())
