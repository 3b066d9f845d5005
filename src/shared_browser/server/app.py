"""HTTP Control Surface.

Endpoints:
  GET  /             plain-text capability listing
  GET  /api/status   registered pages
  POST /api/action   dispatch one action ``{ action, pageId?, timeoutMs?, ... }``
  GET  /logs         Server-Sent-Events stream of session events

Every response carries permissive CORS headers and ``OPTIONS`` on any path
answers 204 with no body.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared_browser.actions.service import CommandDispatcher
from shared_browser.server.timeouts import is_timeout_error, resolve_timeout_ms, run_with_timeout

if TYPE_CHECKING:
    from shared_browser.browser.broadcaster import EventBroadcaster, Subscription
    from shared_browser.browser.session import SharedBrowserSession

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET,POST,OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type',
}


def capability_text(port: int) -> str:
    return (
        'Shared Playwright Browser Server\n'
        f'Port: {port}\n'
        'Endpoints:\n'
        '  GET  /api/status\n'
        '  POST /api/action { action, ... }\n'
        '  GET  /logs (SSE)\n'
    )


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({'ok': False, 'error': message}, status_code=status_code)


async def sse_events(subscription: 'Subscription') -> AsyncIterator[str]:
    """Frame broadcast events as Server-Sent Events until the stream ends."""
    try:
        yield '\n'
        async for event in subscription:
            yield f'data: {json.dumps(event, default=str)}\n\n'
    finally:
        subscription.close()


def create_app(
    session: 'SharedBrowserSession',
    broadcaster: 'EventBroadcaster',
    default_timeout_ms: float,
    port: int,
) -> FastAPI:
    """Build the control-surface app around an already started session."""
    dispatcher = CommandDispatcher(session, default_timeout_ms)

    app = FastAPI(
        title='Shared Browser Server',
        description='One persistent browser session shared by many automation clients',
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.session = session
    app.state.broadcaster = broadcaster
    app.state.dispatcher = dispatcher

    @app.middleware('http')
    async def cors_middleware(request: Request, call_next):
        if request.method == 'OPTIONS':
            response = Response(status_code=204)
        else:
            response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Unmatched paths and methods share one envelope
        if exc.status_code in (404, 405):
            return error_response('Not found', 404)
        return error_response(str(exc.detail), exc.status_code)

    @app.get('/')
    async def index() -> PlainTextResponse:
        return PlainTextResponse(capability_text(port))

    @app.get('/api/status')
    async def status() -> dict[str, Any]:
        return {'ok': True, 'pages': [page.to_wire() for page in session.list_pages()]}

    @app.post('/api/action')
    async def action(request: Request):
        try:
            body = await request.json()
        except ValueError as e:
            return error_response(f'Invalid JSON body: {e}', 400)
        if not isinstance(body, dict):
            return error_response('Request body must be a JSON object', 400)

        name = body.get('action')
        if not name:
            return error_response('Missing action', 400)

        timeout_ms = resolve_timeout_ms(body.get('timeoutMs'), default_timeout_ms)
        try:
            result = await run_with_timeout(dispatcher.execute(name, body), timeout_ms, f'action:{name}')
        except Exception as e:
            message = str(e)
            if is_timeout_error(e):
                logger.warning(message, extra={'type': 'api:timeout', 'action': name})
                return error_response(message, 408)
            logger.error(f'Action {name} failed: {message}', extra={'type': 'api', 'action': name})
            return error_response(message, 400)

        try:
            return JSONResponse({'ok': True, 'result': result})
        except (TypeError, ValueError) as e:
            logger.error(f'Action {name} returned an unserializable result: {e}', extra={'type': 'api', 'action': name})
            return error_response(f'Result is not JSON serializable: {e}', 400)

    @app.get('/logs')
    async def logs() -> StreamingResponse:
        subscription = broadcaster.subscribe()
        return StreamingResponse(
            sse_events(subscription),
            media_type='text/event-stream',
            headers={'Cache-Control': 'no-cache', 'Connection': 'keep-alive', 'X-Accel-Buffering': 'no'},
        )

    return app
