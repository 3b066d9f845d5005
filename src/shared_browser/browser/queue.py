"""Per-key action serialization.

Each queue key (a page id, or ``GLOBAL_KEY`` for session-wide work) owns a
chain of tasks: a new task starts only after the previous task for the same
key has settled, whatever its outcome. Different keys never wait on each
other.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from shared_browser.exceptions import PageClosedError

logger = logging.getLogger(__name__)

T = TypeVar('T')

GLOBAL_KEY: None = None


class ActionQueue:
    """At-most-one in-flight action per key.

    ``is_page_alive`` is consulted after a page-scoped task reaches the front
    of its chain and before it touches the driver, because a close can race
    with a queued action.
    """

    def __init__(self, is_page_alive: Callable[[str], bool]):
        self._is_page_alive = is_page_alive
        self._tails: dict[str | None, asyncio.Task[Any]] = {}

    def __contains__(self, key: str | None) -> bool:
        return key in self._tails

    def __len__(self) -> int:
        return len(self._tails)

    def enqueue(self, key: str | None, task: Callable[[], Awaitable[T]]) -> 'asyncio.Task[T]':
        """Schedule ``task`` after everything already queued for ``key``.

        Returns the asyncio task running it; awaiting it yields the result or
        re-raises the error.
        """
        previous = self._tails.get(key)
        runner = asyncio.ensure_future(self._run_after(previous, key, task))
        self._tails[key] = runner
        runner.add_done_callback(lambda finished: self._settle(key, finished))
        return runner

    def discard(self, key: str) -> None:
        """Forget the chain for a closed page.

        Tasks already chained still run their alive check and fail with
        ``PageClosedError``.
        """
        self._tails.pop(key, None)

    async def _run_after(
        self,
        previous: 'asyncio.Task[Any] | None',
        key: str | None,
        task: Callable[[], Awaitable[T]],
    ) -> T:
        if previous is not None and not previous.done():
            # asyncio.wait never raises the previous task's error
            await asyncio.wait({previous})

        try:
            if key is not GLOBAL_KEY and not self._is_page_alive(key):
                raise PageClosedError(key)
            return await task()
        except Exception as e:
            scope = 'global' if key is GLOBAL_KEY else 'page'
            label = scope if key is GLOBAL_KEY else f'{scope} {key}'
            logger.error(
                f'Queued action failed ({label}): {e}',
                extra={'type': 'queue', 'scope': scope, 'pageId': key},
            )
            raise

    def _settle(self, key: str | None, finished: 'asyncio.Task[Any]') -> None:
        if self._tails.get(key) is finished:
            del self._tails[key]
        # Mark the outcome retrieved: a caller that timed out no longer awaits it
        if not finished.cancelled():
            finished.exception()
