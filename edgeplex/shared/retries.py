from __future__ import annotations

import asyncio
from dataclasses import dataclass
from random import uniform
from typing import Awaitable, Callable, TypeVar


T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    base_delay_seconds: float = 0.0
    max_delay_seconds: float = 0.0
    backoff_factor: float = 2.0
    jitter: bool = False
    retry_exceptions: tuple[type[Exception], ...] = (Exception,)


class AsyncRetriesService:
    async def run(
        self,
        operation: Callable[[int], Awaitable[T]],
        *,
        policy: RetryPolicy,
        should_retry: Callable[[Exception], bool] | None = None,
        on_retry: Callable[[Exception, int, float], None] | None = None,
    ) -> T:
        if policy.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if policy.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if policy.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if policy.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")

        attempt = 1
        while True:
            try:
                return await operation(attempt)
            except Exception as exc:
                if not isinstance(exc, policy.retry_exceptions):
                    raise
                if should_retry is not None and not should_retry(exc):
                    raise
                if attempt >= policy.max_attempts:
                    raise
                delay = self._delay_for_attempt(policy=policy, attempt=attempt)
                if on_retry is not None:
                    on_retry(exc, attempt, delay)
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

    @staticmethod
    def _delay_for_attempt(*, policy: RetryPolicy, attempt: int) -> float:
        if policy.base_delay_seconds == 0:
            return 0.0
        ceiling = policy.max_delay_seconds or policy.base_delay_seconds
        delay = min(ceiling, policy.base_delay_seconds * (policy.backoff_factor ** (attempt - 1)))
        if policy.jitter:
            return uniform(delay * 0.5, delay)
        return delay


async def random_delay(min_seconds: float, max_seconds: float) -> None:
    delay = uniform(min_seconds, max_seconds) if max_seconds > min_seconds else min_seconds
    if delay > 0:
        await asyncio.sleep(delay)
