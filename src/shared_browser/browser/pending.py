"""FIFO correlation between new-page requests and page-attach notifications.

The driver's ``page`` notification does not say which request opened the
tab, so requests are matched purely by arrival order:

* the Nth outstanding placeholder is resolved by the Nth attach after it,
* a placeholder is never matched by inspecting the new page,
* each attach consumes at most one placeholder.

New-page requests are serialized on the global action queue, so normally
only one placeholder is outstanding; the FIFO keeps the matching sound when
that is not the case.
"""

import asyncio
import logging
from collections import deque

from shared_browser.exceptions import PendingPageOverflowError

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 64


class PendingPageRequests:
    """Bounded FIFO of placeholders awaiting their page id."""

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self.max_pending = max_pending
        self._waiters: deque[asyncio.Future[str]] = deque()

    def __len__(self) -> int:
        return len(self._waiters)

    def push(self) -> 'asyncio.Future[str]':
        """Append a placeholder and return the future resolved with its page id."""
        if len(self._waiters) >= self.max_pending:
            raise PendingPageOverflowError(self.max_pending)
        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return waiter

    def resolve_next(self, page_id: str) -> bool:
        """Resolve the oldest live placeholder with ``page_id``.

        Returns False when nothing was waiting, i.e. the tab was not opened
        through a new-page request (popups, ``target=_blank``).
        """
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                # Abandoned by its caller; it must not swallow this attach
                continue
            waiter.set_result(page_id)
            return True
        return False

    def discard_last(self, waiter: 'asyncio.Future[str]') -> None:
        """Remove a placeholder whose open command failed.

        Requests are strictly ordered, so the failed one is the most recently
        pushed. Leaving it behind would let it consume an unrelated attach.
        """
        if self._waiters and self._waiters[-1] is waiter:
            self._waiters.pop()
        elif waiter in self._waiters:
            logger.warning('Discarding a pending new-page request that was not the most recent one')
            self._waiters.remove(waiter)
        if not waiter.done():
            waiter.cancel()

    def cancel_all(self) -> None:
        """Cancel every outstanding placeholder (session shutdown)."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.cancel()
