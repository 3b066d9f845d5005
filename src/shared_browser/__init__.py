"""Shared browser server - one persistent browser session shared by many automation clients."""

__version__ = "0.1.0"

from shared_browser.browser.broadcaster import ConsoleSuppressionRule, EventBroadcaster
from shared_browser.browser.profile import LaunchProfile
from shared_browser.browser.session import SharedBrowserSession
from shared_browser.config import ServerSettings, load_settings
from shared_browser.exceptions import (
    ActionTimeoutError,
    BindError,
    LaunchError,
    PageClosedError,
    SharedBrowserError,
    UnknownActionError,
    UnknownPageError,
)

__all__ = [
    "__version__",
    "ActionTimeoutError",
    "BindError",
    "ConsoleSuppressionRule",
    "EventBroadcaster",
    "LaunchError",
    "LaunchProfile",
    "PageClosedError",
    "ServerSettings",
    "SharedBrowserError",
    "SharedBrowserSession",
    "UnknownActionError",
    "UnknownPageError",
    "load_settings",
]
