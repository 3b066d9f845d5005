"""Page Registry: stable string ids for every tab of the session."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from shared_browser.browser.events import (
    PageCloseEvent,
    PageConsoleEvent,
    PageErrorEvent,
    PageNavigationEvent,
    PageOpenEvent,
)
from shared_browser.exceptions import UnknownPageError

if TYPE_CHECKING:
    from playwright.async_api import ConsoleMessage, Frame, Page

    from shared_browser.browser.broadcaster import EventBroadcaster
    from shared_browser.browser.pending import PendingPageRequests
    from shared_browser.browser.queue import ActionQueue

logger = logging.getLogger(__name__)


@dataclass
class PageInfo:
    """Snapshot of one registered page, as reported by the status endpoint."""

    id: str
    url: str
    is_closed: bool

    def to_wire(self) -> dict[str, Any]:
        return {'id': self.id, 'url': self.url, 'isClosed': self.is_closed}


class PageRegistry:
    """Assigns ids to tabs and translates their driver events.

    Ids are ``"1"``, ``"2"``, ... in attach order and are never reused, even
    after the tab closes. A closed tab leaves the registry immediately, so
    lookups for its id fail with ``UnknownPageError``.
    """

    def __init__(
        self,
        broadcaster: 'EventBroadcaster',
        pending: 'PendingPageRequests',
        queue: 'ActionQueue | None' = None,
        default_timeout_ms: int | None = None,
    ):
        self.broadcaster = broadcaster
        self.pending = pending
        self.queue = queue
        self.default_timeout_ms = default_timeout_ms
        self._pages: dict[str, 'Page'] = {}
        self._ids_by_handle: dict[int, str] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._pages)

    def attach(self, page: 'Page') -> str:
        """Register ``page`` and return its id. Re-attaching returns the existing id."""
        existing = self._ids_by_handle.get(id(page))
        if existing is not None:
            return existing

        page_id = str(self._next_id)
        self._next_id += 1
        self._pages[page_id] = page
        self._ids_by_handle[id(page)] = page_id

        if self.default_timeout_ms is not None:
            page.set_default_timeout(self.default_timeout_ms)
            page.set_default_navigation_timeout(self.default_timeout_ms)

        self._register_listeners(page_id, page)
        self.broadcaster.publish(PageOpenEvent(page_id=page_id, url=page.url))

        if self.pending.resolve_next(page_id):
            logger.debug(f'Page {page_id} resolved a pending new-page request')
        return page_id

    def get(self, page_id: str | None) -> 'Page':
        """Return the live handle for ``page_id`` or raise ``UnknownPageError``."""
        if page_id is None or page_id not in self._pages:
            raise UnknownPageError(page_id)
        return self._pages[page_id]

    def has(self, page_id: str | None) -> bool:
        return page_id is not None and page_id in self._pages

    def list(self) -> list[PageInfo]:
        """Registered pages in id order."""
        return [
            PageInfo(id=page_id, url=page.url, is_closed=page.is_closed())
            for page_id, page in sorted(self._pages.items(), key=lambda item: int(item[0]))
        ]

    def find_id_by_handle(self, page: 'Page | None') -> str | None:
        """Id of a registered handle, or None for unknown and closed tabs."""
        if page is None:
            return None
        page_id = self._ids_by_handle.get(id(page))
        if page_id is None or self._pages.get(page_id) is not page:
            return None
        return page_id

    # ------------------------------------------------------------------
    # Driver event translation
    # ------------------------------------------------------------------

    def _register_listeners(self, page_id: str, page: 'Page') -> None:
        page.on('close', lambda _page: self._on_close(page_id, page))
        page.on('console', lambda message: self._on_console(page_id, message))
        page.on('pageerror', lambda error: self._on_page_error(page_id, error))
        page.on('framenavigated', lambda frame: self._on_frame_navigated(page_id, page, frame))

    def _on_close(self, page_id: str, page: 'Page') -> None:
        if self._pages.get(page_id) is not page:
            return
        del self._pages[page_id]
        self._ids_by_handle.pop(id(page), None)
        if self.queue is not None:
            self.queue.discard(page_id)
        self.broadcaster.publish(PageCloseEvent(page_id=page_id))

    def _on_console(self, page_id: str, message: 'ConsoleMessage') -> None:
        self.broadcaster.publish(PageConsoleEvent(page_id=page_id, text=message.text, severity=message.type))

    def _on_page_error(self, page_id: str, error: Any) -> None:
        message = getattr(error, 'message', None) or str(error)
        self.broadcaster.publish(PageErrorEvent(page_id=page_id, message=message))

    def _on_frame_navigated(self, page_id: str, page: 'Page', frame: 'Frame') -> None:
        if frame is not page.main_frame:
            return
        self.broadcaster.publish(PageNavigationEvent(page_id=page_id, url=frame.url))
