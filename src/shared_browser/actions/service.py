"""Command Dispatcher: the closed set of actions clients can run.

Page-scoped actions run on their page's queue; ``newPage`` and
``evaluateOnServiceWorker`` run on the global queue.

Security note: ``evaluate`` and ``evaluateOnServiceWorker`` execute arbitrary
caller-supplied JavaScript inside the page or the extension worker. This is
an intentional remote-code-execution surface for trusted local callers (test
runners on the same machine). It is not sandboxed; do not expose the server
to untrusted networks.
"""

import base64
import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import ParseResult

from fastapi.encoders import jsonable_encoder

from shared_browser.actions.views import (
    ActionParams,
    ClickParams,
    ClosePageParams,
    EvaluateParams,
    FillParams,
    GotoParams,
    NewPageParams,
    PageActionParams,
    RegisteredAction,
    ScreenshotParams,
    ServiceWorkerEvaluateParams,
    TypeParams,
    WaitForSelectorParams,
)
from shared_browser.browser.events import ActionEvent
from shared_browser.browser.queue import GLOBAL_KEY
from shared_browser.exceptions import UnknownActionError

if TYPE_CHECKING:
    from playwright.async_api import Page

    from shared_browser.browser.session import SharedBrowserSession

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake_options(options: dict[str, Any] | None) -> dict[str, Any]:
    """Map camelCase driver options (``clickCount``) to keyword names (``click_count``)."""
    if not options:
        return {}
    return {_CAMEL_BOUNDARY.sub('_', key).lower(): value for key, value in options.items()}


def async_function_source(expression: str) -> str:
    """Wrap a script body as an async function of ``arg``."""
    return f'async (arg) => {{ {expression} }}'


def _finite(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_finite(item) for item in value]
    return value


def to_json_value(value: Any) -> Any:
    """Convert a script result into plain JSON data.

    The driver maps ``Date``, ``URL`` and ``RegExp`` to ``datetime``,
    ``ParseResult`` and ``re.Pattern``, and keeps ``NaN``/``Infinity`` as
    floats. These become an ISO string, the URL text, the pattern source and
    ``None``.
    """
    encoded = jsonable_encoder(value, custom_encoder={ParseResult: lambda url: url.geturl()})
    return _finite(encoded)


@dataclass
class ActionContext:
    """What an action handler may touch besides its page."""

    session: 'SharedBrowserSession'
    default_timeout_ms: float

    def timeout_for(self, timeout_ms: float | None) -> float:
        return self.default_timeout_ms if timeout_ms is None else timeout_ms


class ActionRegistry:
    """Service for registering and looking up actions."""

    def __init__(self):
        self.actions: dict[str, RegisteredAction] = {}

    def action(
        self,
        name: str,
        description: str,
        param_model: type[ActionParams],
        page_scoped: bool = True,
    ):
        """Decorator for registering actions."""

        def decorator(func: Callable):
            self.actions[name] = RegisteredAction(
                name=name,
                description=description,
                function=func,
                param_model=param_model,
                page_scoped=page_scoped,
            )
            return func

        return decorator

    def get(self, name: str | None) -> RegisteredAction:
        if name is None or name not in self.actions:
            raise UnknownActionError(name)
        return self.actions[name]

    @property
    def names(self) -> list[str]:
        return list(self.actions)


registry = ActionRegistry()


# ============================================================================
# Session-wide actions
# ============================================================================


@registry.action('newPage', 'Open a new tab and return its page id', NewPageParams, page_scoped=False)
async def new_page(params: NewPageParams, page: None, ctx: ActionContext) -> dict[str, Any]:
    page_id = await ctx.session.open_page()
    return {'pageId': page_id}


@registry.action(
    'evaluateOnServiceWorker',
    'Evaluate a script body inside the extension service worker',
    ServiceWorkerEvaluateParams,
    page_scoped=False,
)
async def evaluate_on_service_worker(
    params: ServiceWorkerEvaluateParams, page: None, ctx: ActionContext
) -> dict[str, Any]:
    worker = await ctx.session.find_service_worker(params.extension_id)
    result = await worker.evaluate(async_function_source(params.expression), params.arg)
    return {'ok': True, 'result': to_json_value(result), 'workerUrl': worker.url}


# ============================================================================
# Page actions
# ============================================================================


@registry.action('goto', 'Navigate the page to a URL', GotoParams)
async def goto(params: GotoParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    await page.goto(params.url, wait_until=params.wait_until, timeout=ctx.timeout_for(params.timeout_ms))
    return {'ok': True, 'url': page.url}


@registry.action('click', 'Click the element matching a selector', ClickParams)
async def click(params: ClickParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    options = to_snake_options(params.options)
    options['timeout'] = ctx.timeout_for(params.timeout_ms)
    await page.click(params.selector, **options)
    return {'ok': True}


@registry.action('waitForSelector', 'Wait for a selector to reach a state', WaitForSelectorParams)
async def wait_for_selector(params: WaitForSelectorParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    await page.wait_for_selector(params.selector, state=params.state, timeout=ctx.timeout_for(params.timeout_ms))
    return {'ok': True}


@registry.action('type', 'Type text into an element key by key', TypeParams)
async def type_text(params: TypeParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    if params.delay is not None:
        await page.type(params.selector, params.text, delay=params.delay)
    else:
        await page.type(params.selector, params.text)
    return {'ok': True}


@registry.action('fill', 'Fill an input with a value', FillParams)
async def fill(params: FillParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    await page.fill(params.selector, params.value, timeout=ctx.timeout_for(params.timeout_ms))
    return {'ok': True}


@registry.action('evaluate', 'Evaluate a script body in the page', EvaluateParams)
async def evaluate(params: EvaluateParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    result = await page.evaluate(async_function_source(params.expression), params.arg)
    return {'ok': True, 'result': to_json_value(result)}


@registry.action('screenshot', 'Capture a PNG screenshot as base64', ScreenshotParams)
async def screenshot(params: ScreenshotParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    data = await page.screenshot(full_page=params.full_page)
    return {'ok': True, 'base64': base64.b64encode(data).decode('ascii')}


@registry.action('closePage', 'Close the page', ClosePageParams)
async def close_page(params: ClosePageParams, page: 'Page', ctx: ActionContext) -> dict[str, Any]:
    await page.close()
    return {'ok': True}


class CommandDispatcher:
    """Validates actions and runs them on the right queue."""

    def __init__(
        self,
        session: 'SharedBrowserSession',
        default_timeout_ms: float,
        action_registry: ActionRegistry = registry,
    ):
        self.session = session
        self.registry = action_registry
        self.context = ActionContext(session=session, default_timeout_ms=default_timeout_ms)

    async def execute(self, action: str | None, payload: dict[str, Any]) -> Any:
        """Run ``action`` with ``payload`` and return its result.

        Raises:
            UnknownActionError: For names outside the registered set.
            UnknownPageError: When a page action names an unregistered page.
            PageClosedError: When the page closed while the action was queued.
        """
        registered = self.registry.get(action)
        params = registered.param_model.model_validate(payload)

        if not registered.page_scoped:
            return await self.session.queue.enqueue(
                GLOBAL_KEY, lambda: registered.function(params, None, self.context)
            )

        assert isinstance(params, PageActionParams)
        page_id = params.page_id
        # Fails before enqueueing for unknown ids
        self.session.registry.get(page_id)

        async def run() -> Any:
            page = self.session.registry.get(page_id)
            self.session.broadcaster.publish(ActionEvent.for_action(registered.name, page_id, **params.event_fields()))
            return await registered.function(params, page, self.context)

        return await self.session.queue.enqueue(page_id, run)
