"""Call Bounds — time limits and fan-out joins for provider and store calls.

Invariants:
    - bounded() converts a timeout into UpstreamTimeoutError; other errors pass through untouched
    - gather_all_or_fail() waits for every task before raising, so no task outlives the join
    - bounded_gather() never runs more than `limit` calls at once

Design Decisions:
    - Plain helpers, not a wrapper class: the caller owns the awaitable and the service name
    - Both joins are all-or-fail: every call settles, then the first failure is raised
"""

import asyncio

from rostergraph.core.errors import ErrorContext, UpstreamTimeoutError


async def bounded(
    awaitable, timeout_seconds: float, service: str, context: ErrorContext | None = None,
):
    """Await with a time bound; a timeout becomes UpstreamTimeoutError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise UpstreamTimeoutError(service, timeout_seconds, context=context)


async def gather_all_or_fail(*awaitables) -> list:
    """Run concurrently; wait for every task, then raise the first failure if any."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


async def bounded_gather(factories, limit: int) -> list:
    """Run zero-arg coroutine factories with at most `limit` in flight.

    The first failure is raised after all calls settle.
    """
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def _run(factory):
        async with semaphore:
            return await factory()

    return await gather_all_or_fail(*(_run(f) for f in factories))
