"""Server process lifecycle: launch, bind, serve, shut down.

Shutdown order on SIGINT/SIGTERM: the browser session closes first, then the
event streams end, then uvicorn closes the listening socket and the process
exits. A second signal forces uvicorn's own exit path.
"""

import asyncio
import logging
from types import FrameType

import uvicorn

from shared_browser.browser.broadcaster import ConsoleSuppressionRule, EventBroadcaster
from shared_browser.browser.events import ServerEvent
from shared_browser.browser.session import SharedBrowserSession
from shared_browser.config import ServerSettings
from shared_browser.exceptions import BindError, LaunchError
from shared_browser.server.app import create_app
from shared_browser.server.binding import bind_socket

logger = logging.getLogger(__name__)

GRACEFUL_SHUTDOWN_TIMEOUT = 5


class SharedBrowserServer(uvicorn.Server):
    """uvicorn server that closes the browser before the socket."""

    def __init__(self, config: uvicorn.Config, session: SharedBrowserSession, broadcaster: EventBroadcaster):
        super().__init__(config)
        self.session = session
        self.broadcaster = broadcaster
        self._loop: asyncio.AbstractEventLoop | None = None
        self._shutdown_task: asyncio.Task | None = None

    async def serve(self, sockets=None) -> None:
        self._loop = asyncio.get_running_loop()
        try:
            await super().serve(sockets=sockets)
        finally:
            await self.close_session()

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        if self._loop is None or self._shutdown_task is not None:
            super().handle_exit(sig, frame)
            return
        logger.info(f'Received signal {sig}, shutting down')
        self._loop.call_soon_threadsafe(self._begin_shutdown)

    def _begin_shutdown(self) -> None:
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._graceful_shutdown())

    async def _graceful_shutdown(self) -> None:
        try:
            await self.close_session()
        finally:
            self.should_exit = True

    async def close_session(self) -> None:
        if self.session.is_running:
            self.broadcaster.publish(ServerEvent(type='shutdown', message='Shutting down shared browser server'))
        await self.session.stop()
        self.broadcaster.close()


def build_broadcaster(settings: ServerSettings) -> EventBroadcaster:
    text = settings.suppressed_console_text
    return EventBroadcaster(suppression=ConsoleSuppressionRule(text) if text else None)


async def serve(settings: ServerSettings) -> int:
    """Run the server until a shutdown signal. Returns the process exit status."""
    broadcaster = build_broadcaster(settings)
    session = SharedBrowserSession(settings.to_launch_profile(), broadcaster)

    try:
        await session.start()
    except LaunchError as e:
        logger.critical(f'Failed to launch browser: {e}', extra={'type': 'startup', 'attempts': e.attempts})
        return 1

    try:
        sock = bind_socket(settings.host, settings.port, strict=settings.strict_port)
    except BindError as e:
        logger.critical(f'Failed to bind control surface: {e}', extra={'type': 'startup', 'port': e.port})
        await session.stop()
        return 1

    port = sock.getsockname()[1]
    app = create_app(session, broadcaster, settings.default_timeout_ms, port)
    config = uvicorn.Config(
        app,
        log_config=None,
        lifespan='off',
        timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT,
    )
    server = SharedBrowserServer(config, session, broadcaster)

    message = f'Shared browser server listening on http://{settings.host}:{port}'
    logger.info(message)
    broadcaster.publish(ServerEvent(type='startup', message=message))

    try:
        await server.serve(sockets=[sock])
    finally:
        sock.close()
    return 0
