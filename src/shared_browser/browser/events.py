"""Event definitions broadcast to event-stream subscribers.

Every event is a pydantic model with a ``type`` discriminator, a ``level``
and an epoch-millisecond ``timestamp``. ``to_wire()`` produces the JSON body
clients see, with camelCase keys.
"""

import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

EventLevel = Literal['debug', 'info', 'warn', 'error', 'fatal']


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionEvent(BaseModel):
    """Base class for everything pushed through the Event Broadcaster."""

    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    type: str
    level: EventLevel = 'info'
    timestamp: int = Field(default_factory=_now_ms)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the event-stream JSON shape."""
        return self.model_dump(by_alias=True)

    def log_fields(self) -> dict[str, Any]:
        """Fields attached as ``extra`` to the structured log record."""
        fields = self.to_wire()
        fields.pop('level', None)
        # LogRecord refuses extras named like its own attributes
        if 'message' in fields:
            fields['eventMessage'] = fields.pop('message')
        return fields


# ============================================================================
# Page Lifecycle Events
# ============================================================================


class PageOpenEvent(SessionEvent):
    """A tab was attached to the Page Registry."""

    type: Literal['page:open'] = 'page:open'
    page_id: str = Field(serialization_alias='pageId')
    url: str


class PageCloseEvent(SessionEvent):
    """A tab closed and left the Page Registry."""

    type: Literal['page:close'] = 'page:close'
    page_id: str = Field(serialization_alias='pageId')


class PageConsoleEvent(SessionEvent):
    """A console message was emitted by a page."""

    type: Literal['page:console'] = 'page:console'
    page_id: str = Field(serialization_alias='pageId')
    text: str
    severity: str


class PageErrorEvent(SessionEvent):
    """An uncaught exception was thrown inside a page."""

    type: Literal['page:error'] = 'page:error'
    level: EventLevel = 'error'
    page_id: str = Field(serialization_alias='pageId')
    message: str


class PageNavigationEvent(SessionEvent):
    """The main frame of a page navigated."""

    type: Literal['page:navigation'] = 'page:navigation'
    page_id: str = Field(serialization_alias='pageId')
    url: str


# ============================================================================
# Network Events
# ============================================================================


class NetworkRequestEvent(SessionEvent):
    """A request was issued by the browser session."""

    type: Literal['network:request'] = 'network:request'
    level: EventLevel = 'debug'
    method: str
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    post_data: str | None = Field(default=None, serialization_alias='postData')
    resource_type: str | None = Field(default=None, serialization_alias='resourceType')
    page_id: str | None = Field(default=None, serialization_alias='pageId')


class NetworkResponseEvent(SessionEvent):
    """A response arrived for a request of the browser session."""

    type: Literal['network:response'] = 'network:response'
    level: EventLevel = 'debug'
    url: str
    status: int
    ok: bool
    method: str
    page_id: str | None = Field(default=None, serialization_alias='pageId')


# ============================================================================
# Action and Server Events
# ============================================================================


class ActionEvent(SessionEvent):
    """A page-scoped action started running against the driver."""

    model_config = ConfigDict(populate_by_name=True, extra='allow')

    page_id: str = Field(serialization_alias='pageId')

    @classmethod
    def for_action(cls, action: str, page_id: str, **details: Any) -> 'ActionEvent':
        present = {key: value for key, value in details.items() if value is not None}
        return cls(type=f'action:{action}', page_id=page_id, **present)


class ServerEvent(SessionEvent):
    """Server lifecycle message (startup, shutdown)."""

    message: str
