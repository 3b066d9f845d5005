"""HTTP control surface and server process lifecycle."""

from shared_browser.server.app import create_app
from shared_browser.server.runner import serve

__all__ = ["create_app", "serve"]
