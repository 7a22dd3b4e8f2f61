import asyncio
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    *,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    jitter_ratio: float = 0.0,
) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (1-based): base * 2**attempt."""
    delay = base_delay * (2 ** attempt)
    if max_delay is not None:
        delay = min(max_delay, delay)
    if jitter_ratio:
        delay *= 1.0 + random.uniform(-jitter_ratio, jitter_ratio)
    return max(0.0, delay)


async def with_backoff(
    fn: Callable[[int], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    jitter_ratio: float = 0.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``fn(attempt)`` up to ``attempts`` times with exponential backoff.
    - fn: receives the 1-based attempt number
    - retry_on: which exception types to retry
    - should_retry: optional predicate for finer control (e.g. skip malformed input)
    - on_retry: callback (attempt, exc, sleep_seconds) before each wait
    - sleep: awaitable used for the wait, injectable for tests
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    last_exc = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn(attempt)
        except retry_on as e:
            if should_retry and not should_retry(e):
                raise
            last_exc = e
            if attempt == attempts:
                break
            delay = backoff_delay(
                attempt,
                base_delay=base_delay,
                max_delay=max_delay,
                jitter_ratio=jitter_ratio,
            )
            if on_retry:
                on_retry(attempt, e, delay)
            await sleep(delay)
    assert last_exc is not None
    raise last_exc
