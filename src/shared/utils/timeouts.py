import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from src.core.config import settings
from src.core.exceptions import OperationTimeoutError

T = TypeVar("T")


async def with_request_timeout(awaitable: Awaitable[T], seconds: float | None = None) -> T:
    """Await `awaitable`, raising OperationTimeoutError past the request deadline.

    A timed out write may or may not have committed; callers re-read state.
    """
    try:
        async with asyncio.timeout(seconds or settings.request_timeout_seconds):
            return await awaitable
    except TimeoutError:
        raise OperationTimeoutError()
