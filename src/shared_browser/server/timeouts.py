"""Per-request timeout for dispatched actions.

The timer only rejects the caller: the action keeps running on its queue and
may still complete in the browser after the client saw a 408. Nothing is
cancelled or rolled back.
"""

import asyncio
import math
import re
from collections.abc import Awaitable
from typing import Any, TypeVar

from shared_browser.actions.views import coerce_timeout_ms
from shared_browser.exceptions import ActionTimeoutError

T = TypeVar('T')

_TIMED_OUT = re.compile(r'timed out', re.IGNORECASE)


def resolve_timeout_ms(raw: Any, default_ms: float) -> float:
    """Numeric ``timeoutMs`` overrides the default; anything else keeps it."""
    value = coerce_timeout_ms(raw)
    return default_ms if value is None else value


def is_timeout_error(error: BaseException) -> bool:
    """Clients tell timeouts apart by the ``timed out`` message text."""
    return isinstance(error, ActionTimeoutError) or bool(_TIMED_OUT.search(str(error)))


def _consume_outcome(task: 'asyncio.Future[Any]') -> None:
    if not task.cancelled():
        task.exception()


async def run_with_timeout(work: Awaitable[T], timeout_ms: float | None, label: str) -> T:
    """Await ``work``, raising ``ActionTimeoutError`` after ``timeout_ms``.

    A missing, zero, negative or infinite timeout disables the timer.
    """
    task = asyncio.ensure_future(work)
    if timeout_ms is None or timeout_ms <= 0 or not math.isfinite(timeout_ms):
        return await task

    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000)
    except asyncio.TimeoutError:
        task.add_done_callback(_consume_outcome)
        raise ActionTimeoutError(label, timeout_ms) from None
