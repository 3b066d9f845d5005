"""Pytest configuration and fixtures for the shared-browser test suite.

No real browser is launched: the Playwright objects the session talks to
(context, page, frame, request, response, worker, console message) are
replaced by the small in-memory fakes below. They record every driver call
and fire the same notifications Playwright fires, synchronously, through
``emit``.

Path Setup:
    The src directory is added to sys.path to enable imports like:
    ``from shared_browser.browser.session import SharedBrowserSession``
"""

import asyncio
import sys
from collections import defaultdict
from pathlib import Path

import pytest

src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from shared_browser.browser.broadcaster import ConsoleSuppressionRule, EventBroadcaster  # noqa: E402
from shared_browser.browser.profile import LaunchProfile  # noqa: E402
from shared_browser.browser.session import SharedBrowserSession  # noqa: E402
from shared_browser.config import DEFAULT_SUPPRESSED_CONSOLE_TEXT  # noqa: E402


# ---------------------------------------------------------------------------
# Playwright fakes
# ---------------------------------------------------------------------------


class FakeEmitter:
    """Minimal ``on``/``emit`` event emitter."""

    def __init__(self):
        self._handlers = defaultdict(list)

    def on(self, event, handler):
        self._handlers[event].append(handler)

    def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            handler(*args)


class FakeFrame:
    def __init__(self, page, url="about:blank"):
        self.page = page
        self.url = url


class FakePage(FakeEmitter):
    """Stand-in for ``playwright.async_api.Page``.

    ``delays`` maps a method name to seconds slept inside the call and
    ``failures`` maps it to an exception raised after the delay. Every call
    appends ``("start", name, first_arg)`` and ``("end", name, first_arg)``
    to ``log``, so tests can check that calls never overlap.
    """

    def __init__(self, url="about:blank"):
        super().__init__()
        self.url = url
        self.main_frame = FakeFrame(self, url)
        self.calls = []
        self.log = []
        self.delays = {}
        self.failures = {}
        self.evaluate_result = None
        self.screenshot_bytes = b"PNG"
        self.default_timeout = None
        self.default_navigation_timeout = None
        self._closed = False

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    def set_default_navigation_timeout(self, timeout):
        self.default_navigation_timeout = timeout

    def is_closed(self):
        return self._closed

    def mark_closed(self):
        if not self._closed:
            self._closed = True
            self.emit("close", self)

    async def _call(self, name, *args, **kwargs):
        first = args[0] if args else None
        self.calls.append((name, args, kwargs))
        self.log.append(("start", name, first))
        delay = self.delays.get(name)
        if delay:
            await asyncio.sleep(delay)
        else:
            await asyncio.sleep(0)
        self.log.append(("end", name, first))
        if name in self.failures:
            raise self.failures[name]

    async def goto(self, url, **kwargs):
        await self._call("goto", url, **kwargs)
        self.url = url
        self.main_frame.url = url
        self.emit("framenavigated", self.main_frame)

    async def click(self, selector, **kwargs):
        await self._call("click", selector, **kwargs)

    async def wait_for_selector(self, selector, **kwargs):
        await self._call("wait_for_selector", selector, **kwargs)

    async def type(self, selector, text, **kwargs):
        await self._call("type", selector, text, **kwargs)

    async def fill(self, selector, value, **kwargs):
        await self._call("fill", selector, value, **kwargs)

    async def evaluate(self, expression, arg=None):
        await self._call("evaluate", expression, arg)
        return self.evaluate_result

    async def screenshot(self, **kwargs):
        await self._call("screenshot", **kwargs)
        return self.screenshot_bytes

    async def close(self):
        await self._call("close")
        self.mark_closed()


class FakeWorker:
    def __init__(self, url, result=None):
        self.url = url
        self.result = result
        self.calls = []

    async def evaluate(self, expression, arg=None):
        self.calls.append((expression, arg))
        return self.result


class FakeContext(FakeEmitter):
    """Stand-in for a persistent ``BrowserContext``.

    ``new_page`` fires the ``page`` notification before returning, like
    Playwright; set ``emit_page_event`` to False to simulate a late one.
    """

    def __init__(self, initial_pages=1):
        super().__init__()
        self.pages = [FakePage() for _ in range(initial_pages)]
        self.service_workers = []
        self.init_scripts = []
        self.new_page_error = None
        self.emit_page_event = True
        self.closed = False

    async def new_page(self):
        await asyncio.sleep(0)
        if self.new_page_error is not None:
            raise self.new_page_error
        page = FakePage()
        self.pages.append(page)
        if self.emit_page_event:
            self.emit("page", page)
        return page

    async def add_init_script(self, script=None, path=None):
        self.init_scripts.append(script)

    async def close(self):
        self.closed = True
        for page in list(self.pages):
            page.mark_closed()


class FakeRequest:
    def __init__(self, url="https://example.com/", method="GET", page=None, frame_error=None, post_data=None):
        self.url = url
        self.method = method
        self.headers = {"accept": "*/*"}
        self.post_data = post_data
        self.resource_type = "document"
        self._page = page
        self._frame_error = frame_error

    @property
    def frame(self):
        if self._frame_error is not None:
            raise self._frame_error
        return FakeFrame(self._page)


class FakeResponse:
    def __init__(self, request, status=200):
        self.request = request
        self.url = request.url
        self.status = status
        self.ok = 200 <= status < 300


class FakeConsoleMessage:
    def __init__(self, text, type="log"):
        self.text = text
        self.type = type


def drain(subscription):
    """Every payload currently queued for ``subscription``, without waiting."""
    payloads = []
    while subscription.backlog:
        item = subscription._queue.get_nowait()
        if isinstance(item, dict):
            payloads.append(item)
    return payloads


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def broadcaster():
    return EventBroadcaster(suppression=ConsoleSuppressionRule(DEFAULT_SUPPRESSED_CONSOLE_TEXT))


@pytest.fixture()
def profile(tmp_path):
    return LaunchProfile(user_data_dir=tmp_path / "profile", default_timeout_ms=1000)


@pytest.fixture()
def fake_context():
    return FakeContext()


@pytest.fixture()
def session(profile, broadcaster, fake_context):
    """A session bound to ``fake_context``, as if ``start()`` had launched it."""
    browser_session = SharedBrowserSession(profile, broadcaster, service_worker_retry_delay=0.01)
    browser_session.attach_context(fake_context)
    return browser_session
