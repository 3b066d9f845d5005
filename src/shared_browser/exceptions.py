"""Exceptions raised by the shared browser server.

Driver failures (playwright ``Error``) and payload validation failures
(pydantic ``ValidationError``) are deliberately not wrapped here: they travel
to the HTTP boundary verbatim and become a 400 response.
"""


class SharedBrowserError(Exception):
    """Base exception for all shared-browser errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class LaunchError(SharedBrowserError):
    """Raised when every launch strategy failed to produce a browser session."""

    def __init__(self, message: str, attempts: list[str] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class UnknownPageError(SharedBrowserError):
    """Raised when a caller references a page id that is not registered."""

    def __init__(self, page_id: str | None):
        super().__init__(f'Unknown pageId {page_id}')
        self.page_id = page_id


class PageClosedError(SharedBrowserError):
    """Raised when a queued action reaches the front of its queue after the page closed."""

    def __init__(self, page_id: str):
        super().__init__(f'Page {page_id} closed before action could run')
        self.page_id = page_id


class UnknownActionError(SharedBrowserError):
    """Raised for an action name outside the supported set."""

    def __init__(self, action: str | None):
        super().__init__(f'Unknown action {action}')
        self.action = action


class ActionTimeoutError(SharedBrowserError):
    """Raised when the per-request timer elapses before the action settles.

    The message always contains ``timed out``; clients match on it.
    """

    def __init__(self, label: str, timeout_ms: float):
        super().__init__(f'{label} timed out after {timeout_ms:g}ms')
        self.label = label
        self.timeout_ms = timeout_ms


class ServiceWorkerNotFoundError(SharedBrowserError):
    """Raised when no service worker is available for evaluation."""

    def __init__(self, message: str = 'Service worker not found'):
        super().__init__(message)


class PendingPageOverflowError(SharedBrowserError):
    """Raised when too many new-page requests are outstanding at once."""

    def __init__(self, limit: int):
        super().__init__(f'Too many pending new-page requests (limit {limit})')
        self.limit = limit


class BindError(SharedBrowserError):
    """Raised when the control surface cannot bind a listening port."""

    def __init__(self, message: str, port: int | None = None):
        super().__init__(message)
        self.port = port
