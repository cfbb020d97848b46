"""Rate-limited request executor shared by every Qualys API call.

One executor owns one :class:`RateLimitState`. All requests issued by a
client go through :meth:`RequestExecutor.execute`, which

1. takes a concurrency slot, queueing in arrival order while none is free,
2. delays the call while the remaining budget is inside the reserve buffer
   or Qualys has advised a wait,
3. refreshes the state from the response headers before giving the slot
   back, and
4. retries the throttle status with a fixed cooldown.

Admission is decided only once a slot is held, so a caller that queued
behind another call sees whatever quota that call reported. The state is
mutated only between awaits on a single event loop, so the bookkeeping
itself needs no lock.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Protocol

import httpx

from graph_qualys.provider.exceptions import QualysRateLimitError, build_exception
from graph_qualys.provider.models import RateLimitConfig, RateLimitHeaders, RateLimitState

logger = logging.getLogger(__name__)

SendFn = Callable[[], Awaitable[httpx.Response]]
SleepFn = Callable[[float], Awaitable[None]]


class RequestObserver(Protocol):
    """Hooks invoked synchronously by the executor."""

    def on_admission(self, url: str, wait_seconds: float, state: RateLimitState) -> None: ...

    def on_response(
        self, url: str, status: int, elapsed_ms: float, state: RateLimitState,
    ) -> None: ...

    def on_retry(self, url: str, retry: int, status: int) -> None: ...


@dataclass(frozen=True)
class ExecutorResult:
    """The raw response and a snapshot of the state after bookkeeping."""

    response: httpx.Response
    rate_limit_state: RateLimitState


class RequestExecutor:
    """Admission control, concurrency slots and throttle retries."""

    def __init__(
        self,
        rate_limit_config: RateLimitConfig | None = None,
        rate_limit_state: RateLimitState | None = None,
        observers: Iterable[RequestObserver] = (),
        *,
        _sleep: SleepFn | None = None,
    ) -> None:
        self.config = rate_limit_config or RateLimitConfig()
        self.state = rate_limit_state if rate_limit_state is not None else RateLimitState()
        self._observers = list(observers)
        self._sleep = _sleep or asyncio.sleep
        # Callers parked for a slot, oldest first
        self._waiters: deque[asyncio.Future[None]] = deque()

    async def execute(self, url: str, send: SendFn) -> ExecutorResult:
        """Run *send* under the shared rate limit and return its response.

        Raises :class:`QualysRateLimitError` once throttle retries are
        exhausted and a :class:`QualysError` subclass for any other status
        >= 400. Transport errors raised by *send* propagate unchanged.
        """
        retries = 0
        while True:
            response, elapsed_ms = await self._dispatch(url, send)

            status = response.status_code
            logger.debug(
                "%s -> %d in %.0fms (remaining=%d, running=%d/%d)",
                url, status, elapsed_ms, self.state.limit_remaining,
                self.state.concurrency_running, self.state.concurrency,
            )
            for observer in self._observers:
                observer.on_response(url, status, elapsed_ms, self.state)

            if status == self.config.response_code:
                if retries >= self.config.max_attempts:
                    logger.error(
                        "Throttled by %s (status %d) after %d retries, giving up",
                        url, status, retries,
                    )
                    raise QualysRateLimitError(
                        url, status, response.reason_phrase, attempts=retries + 1,
                    )
                retries += 1
                logger.warning(
                    "Throttled by %s (status %d), retrying in %dms (retry %d/%d)",
                    url, status, self.config.cooldown_period, retries,
                    self.config.max_attempts,
                )
                for observer in self._observers:
                    observer.on_retry(url, retries, status)
                await self._sleep(self.config.cooldown_period / 1000)
                continue

            if status >= 400:
                raise build_exception(url, status, response.reason_phrase)

            return ExecutorResult(response, dataclasses.replace(self.state))

    # -- admission -----------------------------------------------------------

    def _admission_wait(self) -> float:
        """Seconds to pause before dispatch, 0 when the call may go now."""
        state = self.state
        if state.to_wait_seconds > 0:
            return float(state.to_wait_seconds)
        if state.limit_remaining - self.config.reserve_limit <= 0:
            # Nothing advised by Qualys; pause for one cooldown
            return self.config.cooldown_period / 1000
        return 0.0

    async def _admit(self, url: str) -> None:
        wait = self._admission_wait()
        if wait <= 0:
            return
        logger.info(
            "Delaying %s for %.1fs (remaining=%d, reserve=%d, to_wait=%ds)",
            url, wait, self.state.limit_remaining, self.config.reserve_limit,
            self.state.to_wait_seconds,
        )
        for observer in self._observers:
            observer.on_admission(url, wait, self.state)
        await self._sleep(wait)
        self.state.to_wait_seconds = 0

    # -- concurrency slots ---------------------------------------------------

    def _slot_available(self) -> bool:
        return self.state.concurrency_running < max(self.state.concurrency, 1)

    async def _acquire_slot(self) -> None:
        if not self._waiters and self._slot_available():
            self.state.concurrency_running += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before the cancellation
                self._release_slot()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release_slot(self) -> None:
        self.state.concurrency_running -= 1
        self._wake_waiters()

    def _wake_waiters(self) -> None:
        """Hand free slots to parked callers in arrival order."""
        while self._waiters and self._slot_available():
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self.state.concurrency_running += 1
            waiter.set_result(None)

    async def _dispatch(self, url: str, send: SendFn) -> tuple[httpx.Response, float]:
        await self._acquire_slot()
        try:
            await self._admit(url)
            start = time.monotonic()
            response = await send()
            elapsed_ms = (time.monotonic() - start) * 1000
            self._update_state(response)
        finally:
            self._release_slot()
        return response, elapsed_ms

    def _update_state(self, response: httpx.Response) -> None:
        reported = RateLimitHeaders.from_headers(response.headers)
        if reported is None:
            # No headers: assume this call consumed one unit of the budget
            self.state.limit_remaining = max(self.state.limit_remaining - 1, 0)
            return
        reported.apply(self.state)
        # A raised concurrency limit opens slots for parked callers at once
        self._wake_waiters()
