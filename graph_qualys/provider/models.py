"""Rate-limit state, configuration and header parsing for the Qualys API."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Mapping


@dataclass
class RateLimitState:
    """Quota bookkeeping shared by every request issued through one executor.

    ``limit_remaining`` is advisory: it is refreshed from the most recent
    response headers when Qualys sends them and decremented locally
    otherwise, so it can drift from the provider's real counter.
    """

    limit: int = 300
    limit_remaining: int = 300
    limit_window_seconds: int = 60 * 60
    to_wait_seconds: int = 0
    concurrency: int = 2
    concurrency_running: int = 0


@dataclass(frozen=True)
class RateLimitConfig:
    """Static throttling policy.

    ``max_attempts`` caps throttle *retries* of a single logical call and
    ``cooldown_period`` is expressed in milliseconds.
    """

    response_code: int = 409
    max_attempts: int = 5
    reserve_limit: int = 30
    cooldown_period: int = 1000

    @classmethod
    def merged(cls, overrides: Mapping[str, int] | None = None) -> RateLimitConfig:
        """Build a config from the defaults with *overrides* applied."""
        known = {f.name for f in fields(cls)}
        unknown = set(overrides or {}) - known
        if unknown:
            raise ValueError(f"Unknown rate limit config fields: {sorted(unknown)}")
        return cls(**dict(overrides or {}))


# Header name -> RateLimitState field
_HEADER_FIELDS: dict[str, str] = {
    "x-ratelimit-limit": "limit",
    "x-ratelimit-window-sec": "limit_window_seconds",
    "x-ratelimit-remaining": "limit_remaining",
    "x-ratelimit-towait-sec": "to_wait_seconds",
    "x-concurrency-limit-limit": "concurrency",
}


@dataclass(frozen=True)
class RateLimitHeaders:
    """Quota values reported by Qualys on a single response.

    Each field is ``None`` when the matching header was not sent.
    """

    limit: int | None = None
    limit_window_seconds: int | None = None
    limit_remaining: int | None = None
    to_wait_seconds: int | None = None
    concurrency: int | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> RateLimitHeaders | None:
        """Parse ``X-RateLimit-*`` / ``X-Concurrency-Limit-*`` headers.

        Returns *None* if none of them are present or parseable.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        values: dict[str, int] = {}
        for header, field_name in _HEADER_FIELDS.items():
            raw = lowered.get(header)
            if raw is None:
                continue
            try:
                values[field_name] = int(raw)
            except ValueError:
                continue
        if not values:
            return None
        return cls(**values)

    def apply(self, state: RateLimitState) -> None:
        """Copy every reported value onto *state*."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                setattr(state, f.name, value)
