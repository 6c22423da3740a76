"""Retry with backoff for network calls, built on tenacity."""

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential, wait_fixed

from ..core.exceptions import TimeoutError as LunaTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class RetryAttempt:
    attempt: int
    error: BaseException


@dataclass
class RetryInfo:
    """History handed to ``should_retry`` and ``on_retry``.

    ``previous_attempts`` includes the failure currently being judged.
    """
    attempt: int
    retries: int
    previous_attempts: List[RetryAttempt] = field(default_factory=list)


RetryPredicate = Callable[[BaseException, int, RetryInfo], bool]
RetryHook = Callable[[BaseException, int, RetryInfo], Any]


def with_retry(
    fn: Optional[Callable[..., Awaitable[Any]]] = None,
    *,
    retries: int = 3,
    factor: float = 2.0,
    min_timeout: float = 1.0,
    max_delay: Optional[float] = 30.0,
    retry_timeout: Optional[float] = None,
    max_timeout: Optional[float] = None,
    on_retry: Optional[RetryHook] = None,
    should_retry: Optional[RetryPredicate] = None,
):
    """Wrap an async callable so failures are retried.

    Attempt 0 runs immediately. After a failure, ``should_retry(error,
    attempt, info)`` decides whether to go on (default: always) and the
    error is re-raised once ``retries`` retries are spent.

    Delay between attempts is either fixed (``retry_timeout`` seconds) or
    exponential, ``min_timeout * factor ** attempt`` capped at
    ``max_delay``. When ``max_timeout`` is set every attempt is bounded by
    it and a slow attempt fails with :class:`luna_llm.core.exceptions.TimeoutError`.

    Can be used directly or as a decorator::

        fetch = with_retry(fetch, retries=4)

        @with_retry(retries=2, retry_timeout=0.5)
        async def call():
            ...
    """
    if retries < 0:
        raise ValueError("retries must be >= 0")

    def decorator(func: Callable[..., Awaitable[Any]]):
        if retry_timeout is not None:
            wait = wait_fixed(retry_timeout)
        else:
            wait = wait_exponential(
                multiplier=min_timeout,
                exp_base=factor,
                max=max_delay if max_delay is not None else float("inf"),
            )

        async def run_attempt(*args, **kwargs):
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                if max_timeout is None:
                    result = await result
                else:
                    try:
                        result = await asyncio.wait_for(result, timeout=max_timeout)
                    except asyncio.TimeoutError as e:
                        raise LunaTimeoutError(max_timeout) from e
            return result

        name = getattr(func, "__qualname__", None) or repr(func)

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            previous_attempts: List[RetryAttempt] = []

            def judge(retry_state: RetryCallState) -> bool:
                outcome = retry_state.outcome
                if outcome is None or not outcome.failed:
                    return False

                error = outcome.exception()
                attempt = retry_state.attempt_number - 1
                previous_attempts.append(RetryAttempt(attempt=attempt, error=error))

                if attempt >= retries:
                    return False
                if should_retry is None:
                    return True
                info = RetryInfo(attempt, retries, list(previous_attempts))
                return bool(should_retry(error, attempt, info))

            def before_sleep(retry_state: RetryCallState) -> None:
                error = retry_state.outcome.exception()
                attempt = retry_state.attempt_number - 1
                logger.warning(
                    f"Attempt {attempt + 1} of {name} failed ({error!r}); "
                    f"retrying ({retries - attempt} left)"
                )
                if on_retry is not None:
                    on_retry(error, attempt, RetryInfo(attempt, retries, list(previous_attempts)))

            retrying = AsyncRetrying(
                stop=stop_after_attempt(retries + 1),
                wait=wait,
                retry=judge,
                before_sleep=before_sleep,
                reraise=True,
            )
            return await retrying(run_attempt, *args, **kwargs)

        return wrapper

    if fn is not None:
        return decorator(fn)
    return decorator
