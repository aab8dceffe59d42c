"""
Fan-out / fan-in helpers for request-scoped concurrent work.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List

logger = logging.getLogger(__name__)


async def gather_fail_fast(*aws: Awaitable[Any]) -> List[Any]:
    """Run awaitables concurrently and return their results in order.

    Unlike ``asyncio.gather`` the first failure cancels every task still in
    flight before it is re-raised, so no work outlives the failed request.
    Cancelling the caller cancels all children too.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    failed = next((t for t in tasks if t in done and not t.cancelled() and t.exception()), None)
    if failed is not None:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug("Cancelled %d in-flight task(s) after a failure", len(pending))
        raise failed.exception()

    return [t.result() for t in tasks]
