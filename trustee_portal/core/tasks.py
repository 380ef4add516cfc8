"""
Trustee Portal - Background Side Effects

Out-of-band work (emails, notifications) scheduled on the running loop.
Failures are logged and never propagate to the request that scheduled them.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional

from trustee_portal.core.logging import get_logger

logger = get_logger(__name__)

# Strong references so pending tasks are not garbage collected mid-flight
_background_tasks: set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            "Background task failed",
            task=task.get_name(),
            error=str(error),
            error_type=type(error).__name__,
        )


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
    """Schedule a coroutine without awaiting it."""
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


async def drain_background_tasks(timeout: float = 5.0) -> None:
    """Wait for outstanding side effects, used on shutdown and in tests."""
    pending = [t for t in _background_tasks if not t.done()]
    if pending:
        await asyncio.wait(pending, timeout=timeout)
