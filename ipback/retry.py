"""Throttle-aware retry shim for mutating provider calls.

Providers answer quota exhaustion with a recognizable error code. Such a
failure is not a reason to give up, only to wait for the quota window to
reset: the limiter sleeps a fixed cooldown and re-issues the identical
request, with no attempt cap. Every other failure is fatal and propagates
on the first occurrence.

Example:
    from ipback.retry import RateLimiter

    limiter = RateLimiter(cooldown=304.0)

    async def create_address():
        op = await gateway.begin_create_or_update(ref, PublicAddressSpec())
        return await op.result()

    resource = await limiter.call(create_address, label="create pip-0")

Re-issuing is safe because every mutating call is create-or-update or
delete on a fixed name: a retried request converges on the same resource.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_never, wait_fixed

from ipback.events import Throttled, emit

type RetryPredicate = Callable[[BaseException], bool]
type Sleep = Callable[[float], Awaitable[None]]

DEFAULT_THROTTLE_MARKERS: tuple[str, ...] = ("SubscriptionRequestsThrottled", "TooManyRequests")
DEFAULT_COOLDOWN = 304.0


def on_exception_message(*patterns: str) -> RetryPredicate:
    """Predicate matching exceptions whose text contains any of ``patterns``.

    Matching is case sensitive: provider error codes are exact identifiers.
    """

    def predicate(e: BaseException) -> bool:
        msg = str(e)
        return any(p in msg for p in patterns)

    return predicate


class RateLimiter:
    """Wraps one provider call at a time, retrying only on throttling.

    Args:
        cooldown: Seconds to wait after a throttled response before re-issuing.
        markers: Error-text substrings that identify a throttled response.
        sleep: Awaitable sleep, injectable so tests never block.
    """

    def __init__(
        self,
        cooldown: float = DEFAULT_COOLDOWN,
        markers: Sequence[str] = DEFAULT_THROTTLE_MARKERS,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if cooldown < 0:
            raise ValueError(f"cooldown must be >= 0, got {cooldown}")
        self.cooldown = cooldown
        self.markers = tuple(markers)
        self.is_throttled: RetryPredicate = on_exception_message(*self.markers)
        self._sleep = sleep
        self.throttles = 0

    async def call[T](
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "provider call",
        slot: int | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or fails with a non-throttle error."""

        def _before_sleep(state: RetryCallState) -> None:
            self.throttles += 1
            exc = state.outcome.exception() if state.outcome else None
            logger.bind(slot=slot).warning(
                "{label}: too many requests ({err}). Retrying in {cooldown:.0f}s (throttle #{n})",
                label=label,
                err=exc,
                cooldown=self.cooldown,
                n=state.attempt_number,
            )
            emit(Throttled(operation=label, attempt=state.attempt_number, cooldown=self.cooldown))

        retrying = AsyncRetrying(
            retry=retry_if_exception(self.is_throttled),
            wait=wait_fixed(self.cooldown),
            stop=stop_never,
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

        async def _attempt() -> T:
            return await operation()

        return await retrying(_attempt)
