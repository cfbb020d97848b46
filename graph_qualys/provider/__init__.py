"""Qualys API client with a shared rate-limited request executor."""

from __future__ import annotations

from graph_qualys.provider.client import QualysAPIClient
from graph_qualys.provider.exceptions import (
    QualysAPIError,
    QualysAuthenticationError,
    QualysError,
    QualysRateLimitError,
    QualysResponseError,
)
from graph_qualys.provider.models import RateLimitConfig, RateLimitHeaders, RateLimitState
from graph_qualys.provider.request import ExecutorResult, RequestExecutor, RequestObserver

__all__ = [
    "QualysAPIClient",
    "RequestExecutor",
    "RequestObserver",
    "ExecutorResult",
    "QualysError",
    "QualysAPIError",
    "QualysAuthenticationError",
    "QualysRateLimitError",
    "QualysResponseError",
    "RateLimitConfig",
    "RateLimitHeaders",
    "RateLimitState",
]
