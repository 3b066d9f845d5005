"""The shared browser session.

``SharedBrowserSession`` is the one service object that owns all mutable
state of a running server: the Playwright context, the Page Registry, the
Action Serialization Queue and the pending new-page FIFO. It is constructed
once at startup and handed to the HTTP handlers; driver callbacks are bound
to it when the context is launched.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from shared_browser.browser.broadcaster import EventBroadcaster
from shared_browser.browser.events import NetworkRequestEvent, NetworkResponseEvent
from shared_browser.browser.launcher import SessionLauncher
from shared_browser.browser.pending import PendingPageRequests
from shared_browser.browser.profile import LaunchProfile
from shared_browser.browser.queue import ActionQueue
from shared_browser.browser.registry import PageInfo, PageRegistry
from shared_browser.exceptions import ServiceWorkerNotFoundError, SharedBrowserError

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page, Playwright, Request, Response, Worker

logger = logging.getLogger(__name__)

SERVICE_WORKER_RETRY_DELAY = 1.0
EXTENSION_SCHEME = 'chrome-extension://'


def select_service_worker(workers: list['Worker'], extension_id: str | None = None) -> 'Worker | None':
    """Pick the worker to evaluate in.

    Preference order: a background script under the extension origin, any
    worker under that origin, then any worker at all. Without
    ``extension_id`` every ``chrome-extension://`` worker counts as under the
    origin.
    """
    origin = f'{EXTENSION_SCHEME}{extension_id}/' if extension_id else EXTENSION_SCHEME
    under_origin = [worker for worker in workers if worker.url.startswith(origin)]

    for worker in under_origin:
        if 'background' in worker.url[len(origin) :]:
            return worker
    if under_origin:
        return under_origin[0]
    return workers[0] if workers else None


class SharedBrowserSession:
    """One persistent browser context shared by every client.

    Example:
        >>> session = SharedBrowserSession(settings.to_launch_profile(), broadcaster)
        >>> await session.start()
        >>> page_id = await session.queue.enqueue(GLOBAL_KEY, session.open_page)
    """

    def __init__(
        self,
        profile: LaunchProfile,
        broadcaster: EventBroadcaster,
        service_worker_retry_delay: float = SERVICE_WORKER_RETRY_DELAY,
    ):
        self.profile = profile
        self.broadcaster = broadcaster
        self.service_worker_retry_delay = service_worker_retry_delay
        self.pending = PendingPageRequests()
        self.queue = ActionQueue(is_page_alive=self._is_page_alive)
        self.registry = PageRegistry(
            broadcaster=broadcaster,
            pending=self.pending,
            queue=self.queue,
            default_timeout_ms=profile.default_timeout_ms,
        )
        self.launcher = SessionLauncher(profile)
        self.context: 'BrowserContext | None' = None
        self._playwright: 'Playwright | None' = None
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self.context is not None and not self._stopped

    def _is_page_alive(self, page_id: str) -> bool:
        return self.registry.has(page_id)

    def _require_context(self) -> 'BrowserContext':
        if self.context is None or self._stopped:
            raise SharedBrowserError('Browser session is not running')
        return self.context

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the browser and register its tabs.

        Raises:
            LaunchError: When no launch strategy succeeded.
        """
        self._playwright = await async_playwright().start()
        try:
            context = await self.launcher.launch(self._playwright)
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        self.attach_context(context)

        if not context.pages:
            # Persistent contexts normally open with one tab; create it otherwise
            self.registry.attach(await context.new_page())

    def attach_context(self, context: 'BrowserContext') -> None:
        """Bind driver notifications of ``context`` and register its existing tabs."""
        self.context = context
        context.on('page', self._on_page)
        context.on('request', self._on_request)
        context.on('response', self._on_response)
        for page in context.pages:
            self.registry.attach(page)

    async def stop(self) -> None:
        """Close the browser context and the driver. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        self.pending.cancel_all()

        if self.context is not None:
            logger.info('Closing browser session')
            try:
                await self.context.close()
            except Exception as e:
                logger.warning(f'Error while closing browser context: {e}')
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f'Error while stopping Playwright: {e}')
            self._playwright = None

    # ------------------------------------------------------------------
    # Session-wide operations (run on the global queue)
    # ------------------------------------------------------------------

    def list_pages(self) -> list[PageInfo]:
        return self.registry.list()

    async def open_page(self) -> str:
        """Open a tab and return the id its attach notification assigned.

        Must run on the global queue. The placeholder is pushed before the
        driver call; if that call fails, the placeholder is removed again so
        it cannot consume an unrelated attach later.
        """
        context = self._require_context()
        waiter = self.pending.push()
        try:
            page = await context.new_page()
        except Exception:
            self.pending.discard_last(waiter)
            raise

        # The 'page' notification may not have been delivered yet
        self.registry.attach(page)
        return await waiter

    async def find_service_worker(self, extension_id: str | None = None) -> 'Worker':
        """Select a service worker, retrying once after a short delay."""
        context = self._require_context()
        worker = select_service_worker(list(context.service_workers), extension_id)
        if worker is None:
            logger.debug(f'No service worker yet, retrying in {self.service_worker_retry_delay}s')
            await asyncio.sleep(self.service_worker_retry_delay)
            worker = select_service_worker(list(context.service_workers), extension_id)
        if worker is None:
            raise ServiceWorkerNotFoundError()
        return worker

    # ------------------------------------------------------------------
    # Driver callbacks
    # ------------------------------------------------------------------

    def _on_page(self, page: 'Page') -> None:
        self.registry.attach(page)

    def _attribute(self, request: 'Request') -> str | None:
        try:
            page = request.frame.page
        except Exception:
            # Service worker and early navigation requests have no page frame
            return None
        return self.registry.find_id_by_handle(page)

    def _on_request(self, request: 'Request') -> None:
        try:
            post_data = request.post_data
        except UnicodeDecodeError:
            post_data = None
        self.broadcaster.publish(
            NetworkRequestEvent(
                method=request.method,
                url=request.url,
                headers=dict(request.headers),
                post_data=post_data,
                resource_type=request.resource_type,
                page_id=self._attribute(request),
            )
        )

    def _on_response(self, response: 'Response') -> None:
        request = response.request
        self.broadcaster.publish(
            NetworkResponseEvent(
                url=response.url,
                status=response.status,
                ok=response.ok,
                method=request.method,
                page_id=self._attribute(request),
            )
        )

