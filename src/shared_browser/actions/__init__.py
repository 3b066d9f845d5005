"""Action registry and command dispatcher."""

from shared_browser.actions.service import ActionRegistry, CommandDispatcher, registry

__all__ = ["ActionRegistry", "CommandDispatcher", "registry"]
