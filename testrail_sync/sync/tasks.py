"""Concurrent fan-out that never leaves orphaned tasks behind."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable


async def gather_or_cancel(*aws: Awaitable[Any]) -> list[Any]:
    """``asyncio.gather`` that cancels and awaits the siblings when one raises.

    Plain ``gather`` lets the remaining tasks keep running after the first
    exception; here they are stopped before the exception reaches the caller.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
