"""Blocking-work offload and bounded retries for pipeline runs."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from concurrent.futures import Executor
from typing import Any, TypeVar

import structlog

from wirecheck.core.errors import WirecheckError

logger = structlog.get_logger()

T = TypeVar("T")


async def run_blocking(
    executor: Executor | None,
    fn: Callable[..., T],
    *args: Any,
    on_abandon: Callable[[T], None] | None = None,
) -> T:
    """Run ``fn`` in ``executor`` without blocking the event loop.

    A worker thread cannot be interrupted. On cancellation this waits for the
    thread to finish, hands any result it produced to ``on_abandon`` (so
    artifacts like checkouts get removed), then re-raises CancelledError.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(executor, functools.partial(fn, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        try:
            result = await future
        except Exception as e:
            logger.debug("abandoned_work_failed", fn=getattr(fn, "__name__", repr(fn)), error=str(e))
        else:
            if on_abandon is not None:
                on_abandon(result)
        raise


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay: float,
    what: str,
    max_delay: float = 30.0,
) -> T:
    """Retry ``operation`` while it raises a retryable WirecheckError."""
    attempt = 0
    while True:
        try:
            return await operation()
        except WirecheckError as e:
            if not e.retryable or attempt >= max_retries:
                raise
            delay = min(base_delay * (2**attempt), max_delay)
            attempt += 1
            logger.warning(
                "transient_failure_retry",
                operation=what,
                attempt=attempt,
                max_retries=max_retries,
                delay_sec=delay,
                error=e.error_name,
            )
            await asyncio.sleep(delay)
