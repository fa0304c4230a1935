"""Time budget for transactional work.

Cancelling the wrapped coroutine unwinds any ``session.begin()`` block
inside it, so the transaction is rolled back before
:class:`~guide_match.errors.StorageTimeout` reaches the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from guide_match.errors import StorageTimeout

logger = structlog.get_logger()

T = TypeVar("T")


async def bounded(operation: str, work: Awaitable[T], timeout_seconds: float) -> T:
    """Await *work*, raising StorageTimeout if it exceeds *timeout_seconds*."""
    try:
        return await asyncio.wait_for(work, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("storage_timeout", operation=operation, timeout_seconds=timeout_seconds)
        raise StorageTimeout(f"{operation} exceeded {timeout_seconds}s") from exc
